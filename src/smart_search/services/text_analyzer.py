"""Keyword-driven query understanding for Spanish marketplace searches.

Extracts categories, intent, sentiment, urgency, price range and sale type
from free text. Price parsing understands Paraguayan colloquial amounts
("500 mil", "1,5 millones", "₲ 150.000").
"""

import re
import unicodedata

import structlog

from shared.constants import MAX_QUERY_KEYWORDS, MIN_KEYWORD_LENGTH
from smart_search.models import Analysis, Intent, PriceRange, SaleType, Sentiment

logger = structlog.get_logger()

_CURRENCY_PATTERN = re.compile(r"₲|\bgs\b\.?|\bpyg\b|\bguaranies?\b|\bg\$")

_SCALE_WORD = r"(?:millon(?:es)?|mil)\b"
_AMOUNT = rf"\d[\d.,]*(?:\s*{_SCALE_WORD})?"
_AMOUNT_PATTERN = re.compile(_AMOUNT)
_RANGE_PATTERN = re.compile(
    rf"\b(?:entre|de)\s*({_AMOUNT})\s*(?:y|a)\s*({_AMOUNT})"
)
_DECIMAL_TAIL = re.compile(r",(\d{1,2})$")

_STOPWORDS = frozenset({
    "de", "la", "que", "el", "en", "y", "a", "los", "del", "se", "las", "por",
    "un", "para", "con", "no", "una", "su", "al", "lo", "como", "mas", "pero",
    "sus", "le", "ya", "o", "este", "si", "porque", "esta", "entre", "cuando",
    "muy", "sin", "sobre", "tambien",
})

# Catalog spellings mapped onto analyzer category names
_CATEGORY_ALIASES = {
    "tecnologia": "technology",
    "electronica": "technology",
    "electronicos": "technology",
    "ropa": "clothing",
    "indumentaria": "clothing",
    "moda": "clothing",
    "hogar": "home",
    "casa": "home",
    "deportes": "sports",
    "deporte": "sports",
    "comida": "food",
    "alimentos": "food",
    "libros": "books",
    "juguetes": "toys",
    "belleza": "beauty",
}


def normalize_text(text: str | None) -> str:
    """Lowercase, strip diacritics and trim."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).strip()


def canonical_category(name: str | None) -> str:
    """Map a catalog category name onto the analyzer's category names."""
    normalized = normalize_text(name)
    return _CATEGORY_ALIASES.get(normalized, normalized)


def extract_keywords(text: str | None) -> list[str]:
    """Distinct content words of a query, in order of appearance."""
    keywords: list[str] = []
    for word in re.split(r"\W+", normalize_text(text)):
        if not word or word in _STOPWORDS or len(word) < MIN_KEYWORD_LENGTH:
            continue
        if word not in keywords:
            keywords.append(word)
    return keywords[:MAX_QUERY_KEYWORDS]


def parse_amount(token: str) -> float | None:
    """
    Parse a numeric token with an optional scale word.

    `.` groups thousands. `,` groups thousands too, except that a final
    comma followed by one or two digits marks the decimal part.

    Returns:
        The amount, or None if the token holds no digits
    """
    cleaned = token.strip().lower()
    match = re.match(r"[\d.,]+", cleaned)
    if not match:
        return None

    digits = match.group(0).rstrip(".,")
    decimal = ""
    tail = _DECIMAL_TAIL.search(digits)
    if tail:
        decimal = tail.group(1)
        digits = digits[: tail.start()]
    integer = digits.replace(".", "").replace(",", "")
    if not integer:
        return None

    value = float(f"{integer}.{decimal}" if decimal else integer)
    scale = cleaned[match.end():].strip()
    if scale.startswith("millon"):
        return value * 1_000_000
    if scale == "mil":
        return value * 1_000
    return value


class TextAnalyzer:
    """Stateless analyzer turning a shopping query into an Analysis."""

    CATEGORY_KEYWORDS = {
        "technology": [
            "telefono", "cel", "celular", "movil", "smartphone",
            "laptop", "notebook", "computadora", "pc", "tablet",
            "auriculares", "audifonos", "cargador", "cable",
            "monitor", "teclado", "mouse",
        ],
        "clothing": [
            "camisa", "remera", "playera", "polera", "pantalon", "jeans",
            "vestido", "zapatos", "zapatillas", "tenis", "chaqueta", "abrigo",
            "ropa", "medias", "calcetines",
        ],
        "home": [
            "muebles", "decoracion", "cocina", "bano", "sala", "dormitorio",
            "jardin", "electrodomestico", "heladera", "refrigerador",
            "microondas", "lavarropas", "lavadora", "licuadora",
        ],
        "sports": [
            "deportivo", "ejercicio", "gym", "fitness", "pelota", "balon",
            "bicicleta", "raqueta", "botines",
        ],
        "food": [
            "pizza", "hamburguesa", "comida", "restaurante", "delivery",
            "almuerzo", "cena", "rapida", "pedido",
        ],
        "books": ["libro", "novela", "educativo", "lectura", "estudio"],
        "toys": ["juguete", "ninos", "bebe", "infantil", "juego"],
        "beauty": [
            "maquillaje", "perfume", "crema", "belleza", "cuidado",
            "cosmetico", "skincare",
        ],
    }

    INTENT_KEYWORDS = {
        Intent.BUY: [
            "comprar", "comprame", "adquirir", "necesito", "quiero", "busco",
            "ordenar", "solicitar", "vender",
        ],
        Intent.COMPARE: ["comparar", "comparativa", "diferencia", "mejor", "vs", "versus"],
        Intent.BROWSE: ["ver", "mostrar", "explorar", "navegar"],
        Intent.PRICE: [
            "precio", "costo", "barato", "barata", "economico", "oferta",
            "promo", "promocion", "rebaja", "descuento",
        ],
        Intent.INFO: [
            "informacion", "detalles", "caracteristicas", "especificaciones",
        ],
    }

    POSITIVE_WORDS = ["bueno", "excelente", "genial", "perfecto", "increible"]
    NEGATIVE_WORDS = ["malo", "terrible", "horrible", "pesimo", "awful"]

    # Checked in order; first tier with a hit wins
    URGENCY_TIERS = [
        (0.9, ["urgente", "ahora", "ya", "inmediato", "rapido", "hoy"]),
        (0.6, ["pronto", "esta semana", "proximo"]),
        (0.2, ["algun dia", "cuando pueda", "no urgente"]),
    ]
    DEFAULT_URGENCY = 0.5

    SALE_TYPE_KEYWORDS = {
        SaleType.DIRECTA: [
            "inmediato", "stock", "disponible", "ahora", "retiro", "en tienda", "pickup",
        ],
        SaleType.PEDIDO: [
            "pedido", "encargar", "encargo", "preorden", "hacer", "personalizado",
        ],
        SaleType.DELIVERY: [
            "delivery", "entrega", "domicilio", "envio", "enviar",
        ],
    }

    MAX_HINTS = ["menos de", "maximo", "hasta", "tope", "barato"]
    MIN_HINTS = ["mas de", "desde", "minimo", "mayor a"]

    def analyze(self, text: str | None) -> Analysis:
        """
        Analyze a free-text query.

        Args:
            text: Raw query as typed by the user

        Returns:
            Analysis with categories, intent, sentiment, urgency, price range
            and sale type. Empty input yields the no-signal analysis.
        """
        normalized = normalize_text(text)
        if not normalized:
            return Analysis()

        analysis = Analysis(
            categories=self.extract_categories(normalized),
            intent=self.detect_intent(normalized),
            sentiment=self.analyze_sentiment(normalized),
            urgency=self.calculate_urgency(normalized),
            price_range=self.extract_price_range(normalized),
            sale_type=self.detect_sale_type(normalized),
        )
        logger.debug(
            "Analyzed query",
            categories=analysis.categories,
            intent=analysis.intent.value,
        )
        return analysis

    def extract_categories(self, text: str) -> list[str]:
        return [
            category
            for category, keywords in self.CATEGORY_KEYWORDS.items()
            if _contains_any(text, keywords)
        ]

    def detect_intent(self, text: str) -> Intent:
        for intent, keywords in self.INTENT_KEYWORDS.items():
            if _contains_any(text, keywords):
                return intent
        return Intent.BROWSE

    def analyze_sentiment(self, text: str) -> Sentiment:
        positive = sum(1 for word in self.POSITIVE_WORDS if word in text)
        negative = sum(1 for word in self.NEGATIVE_WORDS if word in text)
        if positive > negative:
            return Sentiment.POSITIVE
        if negative > positive:
            return Sentiment.NEGATIVE
        return Sentiment.NEUTRAL

    def calculate_urgency(self, text: str) -> float:
        for score, keywords in self.URGENCY_TIERS:
            if _contains_any(text, keywords):
                return score
        return self.DEFAULT_URGENCY

    def extract_price_range(self, text: str) -> PriceRange | None:
        """Parse price bounds from normalized text."""
        stripped = _CURRENCY_PATTERN.sub("", text)

        range_match = _RANGE_PATTERN.search(stripped)
        if range_match:
            a = parse_amount(range_match.group(1))
            b = parse_amount(range_match.group(2))
            if a is not None and b is not None:
                return PriceRange(min=min(a, b), max=max(a, b))

        prices = [
            value
            for value in (parse_amount(m.group(0)) for m in _AMOUNT_PATTERN.finditer(stripped))
            if value is not None
        ]

        if not prices:
            return None

        if len(prices) == 1:
            if _contains_any(stripped, self.MAX_HINTS):
                return PriceRange(max=prices[0])
            if _contains_any(stripped, self.MIN_HINTS):
                return PriceRange(min=prices[0])
            return None

        return PriceRange(min=min(prices), max=max(prices))

    def detect_sale_type(self, text: str) -> SaleType | None:
        for sale_type, keywords in self.SALE_TYPE_KEYWORDS.items():
            if _contains_any(text, keywords):
                return sale_type
        return None


def _contains_any(text: str, keywords: list[str]) -> bool:
    return any(keyword in text for keyword in keywords)
