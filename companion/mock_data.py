"""
Mock data for the Bonk Language Companion.

Used by the AI services in mock mode so the whole correction flow runs
offline and deterministically:
- Keyword tables feed the heuristic language detector
- Scripted corrections cover the demo sentences
- Canned tutor replies stand in for explanations, chat and lessons
"""

# ---------------------------------------------------------------------------
# Language keywords (whole-word, lowercase)
# ---------------------------------------------------------------------------
# Words shared by several languages ("la", "de", "a") are left out so a
# single match is meaningful. Order matters for ties: earlier wins.

LANGUAGE_KEYWORDS = {
    "english": {
        "the", "is", "are", "and", "my", "you", "i", "it", "this", "that",
        "with", "of", "to", "was", "have", "very", "favorite", "like", "what",
    },
    "spanish": {
        "el", "los", "las", "es", "y", "muy", "mucho", "me", "gusta", "que",
        "yo", "pero", "por", "para", "hola", "gracias", "está", "tengo", "soy",
    },
    "french": {
        "le", "les", "je", "tu", "est", "et", "une", "des", "du", "très",
        "pas", "c'est", "nous", "vous", "avec", "j'aime", "bonjour", "suis",
    },
    "german": {
        "der", "die", "das", "und", "ist", "ich", "nicht", "sehr", "mit",
        "ein", "eine", "bin", "habe", "danke", "guten",
    },
    "italian": {
        "il", "lo", "gli", "di", "che", "non", "sono", "molto", "mi", "piace",
        "ciao", "grazie", "questo", "della", "anche",
    },
    "portuguese": {
        "os", "um", "uma", "não", "muito", "eu", "gosto", "você", "é", "do",
        "obrigado", "olá", "isso", "também",
    },
}

# ---------------------------------------------------------------------------
# Scripted corrections (input text stripped -> corrected text)
# ---------------------------------------------------------------------------

MOCK_CORRECTIONS = {
    "Me gusta mucho el cine y la pizza, es my favorite": (
        "Me gusta mucho el cine y la pizza, es mi favorita."
    ),
    "je suis aller au parc hier avec mes amis": (
        "Je suis allé au parc hier avec mes amis."
    ),
    "i has two brother and one sister": "I have two brothers and one sister.",
}

# ---------------------------------------------------------------------------
# Tutor replies
# ---------------------------------------------------------------------------

MOCK_EXPLANATION = (
    "Here is what changed and why:\n"
    "1. Words from another language were replaced so the sentence stays in one language.\n"
    "2. Agreement was fixed: adjectives and articles follow the noun's gender and number.\n"
    "3. The sentence now starts with a capital letter and ends with punctuation.\n"
    "Ask me anything about these corrections!"
)

MOCK_CHAT_REPLIES = [
    "Good question! The short answer is that the noun decides the form of the words around it.",
    "Exactly. Try writing one more sentence using the same pattern and I'll check it.",
    "That's a common mistake for learners. Notice how the verb changes with the subject.",
]

MOCK_LESSON = (
    "1) Key Vocabulary\n"
    "- favorito/favorita: favorite\n"
    "- el cine: the cinema\n"
    "- mucho: a lot\n\n"
    "2) Useful Phrases\n"
    "- Me gusta mucho...: I really like...\n"
    "- Es mi favorito: It's my favorite\n\n"
    "3) Grammar Tips\n"
    "- Adjectives agree with the noun: la pizza es mi favorita."
)
