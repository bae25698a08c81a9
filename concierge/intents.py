import re
from typing import Dict, List, Optional, Tuple

# checked in order, first match wins
INTENT_PATTERNS: Dict[str, List[str]] = {
    "cart_clear": [
        "clear cart", "clear my cart", "clear the cart", "empty cart", "empty my cart", "empty the cart",
        "limpar carrinho", "limpar o carrinho", "esvaziar carrinho", "esvaziar o carrinho",
    ],
    "cart_remove": ["remove", "take out", "delete", "remover", "retirar", "tirar"],
    "cart_add": [
        "add to cart", "add", "buy", "purchase", "i'll take", "put in cart",
        "adicionar", "adiciona", "comprar", "coloca no carrinho",
    ],
    "navigate": ["go to", "take me to", "navigate to", "bring me to", "open the", "ir para", "me leve", "abrir"],
    "cart_view": [
        "show cart", "view cart", "check cart", "my cart", "cart", "basket", "my items", "what do i have",
        "meu carrinho", "ver carrinho", "carrinho",
    ],
    "store_info": [
        "opening hours", "are you open", "what time", "hours", "delivery", "phone number", "contact",
        "horário", "horario", "funcionamento", "entrega", "telefone",
    ],
    "help": ["help", "what can you do", "how does this work", "instructions", "ajuda"],
}

SEARCH_PHRASES = [
    "search for", "searching for", "looking for", "look for", "find me", "find", "show me", "get me",
    "i need", "i want", "where can i find", "do you have", "can you find", "something for",
    "anything for", "medicine for", "remedy for", "procuro", "buscar", "busca", "preciso de",
    "quero", "tem", "algo para", "remédio para", "remedio para",
]

CART_PHRASES = [
    "add to cart", "add to my cart", "add it to cart", "put in cart", "to my cart", "to the cart",
    "to cart", "from my cart", "from the cart", "from cart", "in my cart", "no carrinho", "do carrinho",
    "ao carrinho", "i'll take", "add", "buy", "purchase", "remove", "take out", "delete",
    "adicionar", "adiciona", "comprar", "remover", "retirar", "tirar", "coloca",
]

FILLER_WORDS = {
    "please", "the", "a", "an", "some", "of", "my", "me", "it", "units", "unit", "boxes", "box",
    "por", "favor", "o", "os", "as", "um", "uma", "de", "do", "da", "unidades", "caixas",
}

# a number followed by one of these is part of a product name ("500 mg")
_UNIT_SUFFIX = r"(?:(?:mg|g|ml|mcg|ui)\b|%)"

QUANTITY_PATTERNS = [
    r"(?:buy|add|get|purchase|adicionar|adiciona|comprar)\s+(\d+)\b(?!\s*" + _UNIT_SUFFIX + r")",
    r"(\d+)\s*x\b",
    r"\bx\s*(\d+)\b",
    r"(\d+)\s+(?:of|items?|pieces?|units?|boxes|unidades?|caixas?)",
    r"quantity\s*:?\s*(\d+)",
]

DESTINATION_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("checkout", ["checkout", "check out", "finalizar", "pagamento", "payment"]),
    ("cart", ["cart", "carrinho", "basket"]),
    ("home", ["home", "início", "inicio", "main page"]),
    ("about", ["about", "sobre"]),
    ("contact", ["contact", "contato"]),
    ("category", ["category", "categoria"]),
    ("products", ["products", "catalog", "produtos", "catálogo"]),
]


def _contains(text: str, phrase: str) -> bool:
    return re.search(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", text) is not None


class IntentParser:
    """Keyword intent classification and slot extraction for when no model is available."""

    def __init__(self, intent_patterns: Optional[Dict[str, List[str]]] = None):
        self.intent_patterns = intent_patterns or INTENT_PATTERNS

    def classify_intent(self, text: str) -> str:
        text_lower = text.lower()
        for intent, patterns in self.intent_patterns.items():
            if any(_contains(text_lower, pattern) for pattern in patterns):
                return intent
        return "search"

    def extract_quantity(self, message: str) -> int:
        for pattern in QUANTITY_PATTERNS:
            match = re.search(pattern, message, re.IGNORECASE)
            if match:
                return max(1, int(match.group(1)))
        return 1

    def extract_search_terms(self, message: str, intent: str = "search") -> str:
        """Strip request phrasing so only the product or symptom words remain."""
        terms_to_remove = list(SEARCH_PHRASES)
        if intent in ("cart_add", "cart_remove"):
            terms_to_remove = CART_PHRASES + terms_to_remove

        msg = message.lower().strip()
        for term in terms_to_remove:
            msg = re.sub(r"(?<!\w)" + re.escape(term) + r"(?!\w)", " ", msg)

        # quantities are not part of the product name
        msg = re.sub(r"\b\d+\s*x\b|\bx\s*\d+\b", " ", msg)
        msg = re.sub(r"\b\d+\b(?!\s*" + _UNIT_SUFFIX + r")", " ", msg)
        msg = re.sub(r"[?!.,;:]", " ", msg)

        words = [word for word in msg.split() if word not in FILLER_WORDS]
        return " ".join(words).strip()

    def extract_destination(self, message: str) -> Tuple[Optional[str], str]:
        """Return ``(destination, target)``; destination is None when no page keyword is present."""
        msg = message.lower()
        for phrase in INTENT_PATTERNS["navigate"]:
            msg = re.sub(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", " ", msg)
        for destination, keywords in DESTINATION_KEYWORDS:
            for keyword in keywords:
                if _contains(msg, keyword):
                    if destination != "category":
                        return destination, ""
                    target = re.sub(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)", " ", msg)
                    return destination, self._clean_target(target)
        return None, self._clean_target(msg)

    @staticmethod
    def _clean_target(text: str) -> str:
        words = [w for w in re.sub(r"[?!.,;:]", " ", text).split() if w not in FILLER_WORDS and w not in ("page", "página")]
        return " ".join(words)
