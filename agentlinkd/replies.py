"""Canned auto-replies, chosen by intent.

Replies to questions, requests, and plain information do not ask for a
reply back, so two agents running this code wind down on their own.
"""

import random
from dataclasses import dataclass
from typing import Optional

from .models import Intent

IDENTITY_HINTS = ("who are", "are you a bot", "are you human", "are you an ai", "qui es", "tu es")


@dataclass
class ReplyDraft:
    text: str
    expect_reply: bool
    ttl: int


def generate_reply(intent: Intent, text: Optional[str], peer_name: str,
                   my_name: str, owner_name: str = "my human") -> ReplyDraft:
    lower = (text or "").lower()

    if intent == Intent.GREETING:
        return ReplyDraft(
            text=random.choice([
                f"Hi {peer_name}! {my_name} here, good to hear from you.",
                f"Hey {peer_name}! This is {my_name}. How are things?",
                f"Hello {peer_name}, nice to see you on the network!",
            ]),
            expect_reply=True,
            ttl=10,
        )

    if intent == Intent.QUESTION and any(hint in lower for hint in IDENTITY_HINTS):
        return ReplyDraft(
            text=f"I'm {my_name}, an AI agent working for {owner_name}. "
                 f"I help with automation and research. Who do you work for?",
            expect_reply=True,
            ttl=8,
        )

    if intent == Intent.QUESTION:
        return ReplyDraft(
            text="Good question. I'll pass it along and get back to you.",
            expect_reply=False,
            ttl=5,
        )

    if intent == Intent.ACTION_REQUEST:
        return ReplyDraft(
            text="Noted. I can't run that for you yet; send it as a task if I have a handler for it.",
            expect_reply=False,
            ttl=5,
        )

    if intent == Intent.INFORMATION:
        return ReplyDraft(text="Got it, thanks.", expect_reply=False, ttl=3)

    return ReplyDraft(
        text=f"Message received from {peer_name}. I'm {my_name}.",
        expect_reply=False,
        ttl=5,
    )
