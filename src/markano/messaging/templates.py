"""
WhatsApp message templates for learning milestones.

Each template function returns the plain-text message body. WhatsApp renders
``*bold*`` and ``_italic_`` markers, so no HTML is involved.
"""

from __future__ import annotations

SIGNATURE = "Markano 🎓"


def _greeting(display_name: str) -> str:
    return f"Assalaamu Calaykum {display_name}! 👋"


def lesson_completion(display_name: str, lesson_title: str, course_title: str) -> str:
    """Sent when a learner completes a lesson for the first time."""
    return (
        f"{_greeting(display_name)}\n\n"
        f"Hambalyo! ✅ Waxaad dhammaysay casharka *{lesson_title}* "
        f"ee koorsada *{course_title}*.\n\n"
        "Sii wad, casharka xiga ayaa ku sugaya! 🚀\n\n"
        f"{SIGNATURE}"
    )


def module_completion(display_name: str, module_title: str, course_title: str) -> str:
    """Sent when every active lesson in a module is completed."""
    return (
        f"{_greeting(display_name)}\n\n"
        f"Hambalyo! 🧩 Waxaad dhammaysay qaybta *{module_title}* "
        f"ee koorsada *{course_title}*.\n\n"
        "Horumar fiican! Qaybta xigta u gudub. 💪\n\n"
        f"{SIGNATURE}"
    )


def course_completion(display_name: str, course_title: str) -> str:
    """Sent the first time a course reaches 100% progress."""
    return (
        f"{_greeting(display_name)}\n\n"
        f"🎉 Hambalyo! Waxaad si buuxda u dhammaysay koorsada *{course_title}*!\n\n"
        "Waxaan ku faraxsanahay dadaalkaaga. Koorso cusub ayaa ku sugaysa. 🏆\n\n"
        f"{SIGNATURE}"
    )
