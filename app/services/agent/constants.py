"""Phrase tables for intent classification and generative routing."""

# Representative phrases per intent tag
INTENT_PHRASES = {
    "CONFIRM": [
        "yes",
        "yeah",
        "yep",
        "sure",
        "okay",
        "ok",
        "sounds good",
        "i'll take it",
        "definitely",
        "absolutely",
        "correct",
        "right",
        "that works",
        "fine",
        "good",
        "great",
        "perfect",
        "alright",
    ],
    "DECLINE": [
        "no",
        "nope",
        "not interested",
        "maybe later",
        "no thanks",
        "pass",
        "decline",
        "negative",
        "not now",
        "not today",
        "i don't think so",
        "not really",
        "no way",
    ],
    "REPEAT": [
        "repeat",
        "say that again",
        "what did you say",
        "come again",
        "i didn't hear",
        "pardon",
        "sorry",
        "what was that",
        "can you repeat",
        "one more time",
        "again please",
    ],
    "SCHEDULE": [
        "call me later",
        "call back",
        "schedule",
        "another time",
        "later",
        "not now",
        "reschedule",
        "tomorrow",
        "next week",
        "can we talk later",
        "better time",
    ],
    "QUESTION": [
        "what",
        "why",
        "how",
        "when",
        "where",
        "which",
        "who",
        "difference",
        "tell me",
        "explain",
        "more",
        "about",
        "details",
        "information",
        "compare",
        "versus",
        "vs",
    ],
}

# Priority per tag for multi-intent ordering (higher wins)
INTENT_PRIORITY = {
    "QUESTION": 10,
    "REPEAT": 8,
    "SCHEDULE": 6,
    "DECLINE": 4,
    "CONFIRM": 2,
}

# Boost applied to QUESTION when it co-occurs with CONFIRM ("yes, but what about...")
COMPOUND_QUESTION_PRIORITY_BOOST = 5
COMPOUND_QUESTION_CONFIDENCE_BOOST = 0.1

SINGLE_INTENT_THRESHOLD = 0.7
MULTI_INTENT_THRESHOLD = 0.6

# Markers that route an utterance to the generative path
QUESTION_INDICATORS = [
    "what",
    "why",
    "how",
    "when",
    "where",
    "which",
    "who",
    "can you",
    "could you",
    "difference",
    "tell me",
    "explain",
    "more",
    "about",
    "details",
    "information",
    "compare",
    "versus",
    "vs",
    "better",
    "best",
    "recommend",
    "suggestion",
]

# Intents answered from canned text without a generative call
FAST_PATH_INTENTS = ("CONFIRM", "DECLINE", "REPEAT", "SCHEDULE")

# Call statuses after which the provider will send no further turns
TERMINAL_CALL_STATUSES = ("completed", "failed", "busy", "no-answer", "canceled")
