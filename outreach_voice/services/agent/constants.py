"""Constants for dialogue generation and its fallbacks."""

DEFAULT_REPLY = "I'm sorry, could you repeat that?"

APOLOGY_GOODBYE = "I'm sorry, we're having a technical issue. We'll call you back. Thank you for your time."

END_PHRASE_GOODBYE = "I understand. Thank you for your time. Have a great day!"

REPROMPT = "Sorry, I didn't catch that. Could you please say that again?"

MISSED_INPUT_GOODBYE = "I'm having trouble hearing you, so I'll let you go. Thank you for your time. Goodbye!"

SUMMARY_UNAVAILABLE = "Call completed. Summary unavailable."

# Words used to guess whether the caller speaks Hindi, English, or a mix
HINDI_KEYWORDS = {
    "namaste", "kya", "haan", "han", "nahi", "nahin", "theek", "thik", "accha", "acha",
    "matlab", "samjha", "mera", "meri", "aap", "aapka", "kaise", "main", "hai", "hain",
    "hoon", "se", "ka", "ke", "ki", "ko", "pe", "par", "aur", "ya", "jo", "kuch", "koi",
    "kyun", "kahan", "kab", "kaun", "kaam", "ghar", "paisa", "ji", "abhi", "baad",
    "dhanyawad", "bolo", "boliye", "batao",
}

ENGLISH_KEYWORDS = {
    "hello", "hi", "what", "yes", "no", "good", "okay", "ok", "my", "you", "how", "i",
    "am", "is", "are", "the", "and", "or", "that", "some", "any", "why", "where",
    "when", "who", "work", "home", "money", "please", "thanks", "thank", "sure",
    "interested", "number", "email", "later", "call",
}

# Rule-based responder keyword groups (word-boundary matched)
NEGATIVE_KEYWORDS = ["not interested", "no", "nahi", "nahin", "don't call", "no thanks"]
POSITIVE_KEYWORDS = ["yes", "haan", "fine", "good", "sure", "okay", "ok", "interested", "theek", "accha", "tell me"]
QUESTION_KEYWORDS = ["what", "why", "who", "how", "kya", "kyon", "kyun", "kaun"]
GREETING_KEYWORDS = ["hello", "hi", "namaste", "hey"]
EMAIL_HINT_KEYWORDS = ["email", "gmail", "mail id"]

FALLBACK_REPLIES = {
    "ask_whatsapp": "Great! Can you share your WhatsApp number so I can send the details?",
    "ask_email": "Perfect! Now can you share your email ID?",
    "ask_email_spelled": "Sure, please tell me your email ID slowly.",
    "ask_whatsapp_after_email": "Thank you! Could you also share your WhatsApp number?",
    "complete": "Thank you! We'll send you the details soon. Have a great day!",
    "decline": "No problem. Have a good day!",
    "explain": "We help businesses like yours reach more customers, with no commission. Can I send you the details on WhatsApp?",
    "greeting": "Hi! Thanks for taking my call. Could you share your WhatsApp number so I can send you the details?",
    "default": "Could you share your WhatsApp number so I can send you the details?",
}
