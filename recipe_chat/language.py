"""Language detection, phone-prefix lookups and localized canned texts."""

import re
from collections.abc import Collection
from dataclasses import dataclass

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

# langdetect is randomized unless seeded.
DetectorFactory.seed = 0

SUPPORTED_LANGUAGES = ("de", "en", "tr", "ar", "fr", "es")

_ARABIC = re.compile(r"[؀-ۿ]")
_TURKISH_CHARS = re.compile(r"[ğışĞİŞ]")
_SPANISH_CHARS = re.compile(r"[ñ¿¡]")
_WORD = re.compile(r"[^\W\d_]+", re.UNICODE)

# Letter evidence added to the stopword score. Letters shared by several
# languages count for each of them so the stopwords decide.
_LETTER_SCORES: tuple[tuple[re.Pattern[str], dict[str, int]], ...] = (
    (re.compile(r"[äßÄ]"), {"de": 2}),
    (re.compile(r"[öüÖÜ]"), {"de": 1, "tr": 1}),
    (re.compile(r"[çÇ]"), {"tr": 1, "fr": 1}),
    (re.compile(r"[àâèêëîïôœùû]"), {"fr": 2}),
)

# Statistical fallback only for sentences long enough to carry signal.
FALLBACK_MIN_WORDS = 4
FALLBACK_MIN_PROBABILITY = 0.9

_STOPWORDS: dict[str, frozenset[str]] = {
    "de": frozenset(
        "ich und ist nicht was wie ein eine mit für das die der den kann ich möchte "
        "rezept rezepte kochen hallo danke bitte habe haben zum".split()
    ),
    "en": frozenset(
        "the and is what how can you with for have recipe recipes cook make "
        "hello thanks please want need i my".split()
    ),
    "tr": frozenset(
        "ve bir bu ne nasıl için ile tarif tarifi tarifler yemek merhaba teşekkürler "
        "lütfen istiyorum var mı mi misin musun ben bana önerir".split()
    ),
    "fr": frozenset(
        "le la les et est que comment avec pour une un je recette recettes "
        "bonjour merci veux cuisiner avez".split()
    ),
    "es": frozenset(
        "el la los las y es que como con para una un yo receta recetas hola "
        "gracias quiero cocinar tienes".split()
    ),
}


def detect_language(text: str) -> str | None:
    """Guess the language of a message, or None when inconclusive."""
    if not text or not text.strip():
        return None
    if _ARABIC.search(text):
        return "ar"
    if _TURKISH_CHARS.search(text):
        return "tr"
    if _SPANISH_CHARS.search(text):
        return "es"

    words = [word.lower() for word in _WORD.findall(text)]
    if not words:
        return None

    scores = {lang: sum(word in stopwords for word in words) for lang, stopwords in _STOPWORDS.items()}
    for pattern, weights in _LETTER_SCORES:
        if pattern.search(text):
            for lang, weight in weights.items():
                scores[lang] += weight

    top = max(scores.values())
    leaders = [lang for lang, score in scores.items() if score == top]
    if top > 0 and len(leaders) == 1:
        return leaders[0]
    if len(words) < FALLBACK_MIN_WORDS:
        return None
    return _statistical_guess(text, leaders if top > 0 else SUPPORTED_LANGUAGES)


def _statistical_guess(text: str, candidates: Collection[str]) -> str | None:
    try:
        guesses = detect_langs(text)
    except LangDetectException:
        return None
    for guess in guesses:
        if guess.lang in candidates and guess.prob >= FALLBACK_MIN_PROBABILITY:
            return guess.lang
    return None


@dataclass(frozen=True)
class PhoneRegion:
    language: str
    timezone: str


# Longest prefix wins.
PHONE_REGIONS: dict[str, PhoneRegion] = {
    "1": PhoneRegion("en", "America/New_York"),
    "20": PhoneRegion("ar", "Africa/Cairo"),
    "212": PhoneRegion("fr", "Africa/Casablanca"),
    "213": PhoneRegion("fr", "Africa/Algiers"),
    "216": PhoneRegion("fr", "Africa/Tunis"),
    "33": PhoneRegion("fr", "Europe/Paris"),
    "32": PhoneRegion("fr", "Europe/Brussels"),
    "34": PhoneRegion("es", "Europe/Madrid"),
    "41": PhoneRegion("de", "Europe/Zurich"),
    "43": PhoneRegion("de", "Europe/Vienna"),
    "44": PhoneRegion("en", "Europe/London"),
    "49": PhoneRegion("de", "Europe/Berlin"),
    "52": PhoneRegion("es", "America/Mexico_City"),
    "54": PhoneRegion("es", "America/Argentina/Buenos_Aires"),
    "61": PhoneRegion("en", "Australia/Sydney"),
    "90": PhoneRegion("tr", "Europe/Istanbul"),
    "961": PhoneRegion("ar", "Asia/Beirut"),
    "962": PhoneRegion("ar", "Asia/Amman"),
    "963": PhoneRegion("ar", "Asia/Damascus"),
    "964": PhoneRegion("ar", "Asia/Baghdad"),
    "965": PhoneRegion("ar", "Asia/Kuwait"),
    "966": PhoneRegion("ar", "Asia/Riyadh"),
    "971": PhoneRegion("ar", "Asia/Dubai"),
    "974": PhoneRegion("ar", "Asia/Qatar"),
}
_PREFIXES = sorted(PHONE_REGIONS, key=len, reverse=True)


def normalize_phone(phone: str) -> str:
    """Strip everything but digits, including a leading + or 00."""
    digits = re.sub(r"\D", "", phone or "")
    return digits[2:] if digits.startswith("00") else digits


def region_for_phone(phone: str) -> PhoneRegion | None:
    digits = normalize_phone(phone)
    for prefix in _PREFIXES:
        if digits.startswith(prefix):
            return PHONE_REGIONS[prefix]
    return None


def language_for_phone(phone: str) -> str | None:
    region = region_for_phone(phone)
    return region.language if region else None


def mask_phone(phone: str) -> str:
    digits = normalize_phone(phone)
    return f"***{digits[-4:]}" if len(digits) > 4 else "***"


def resolve_language(
    requested: str | None,
    sticky: str | None = None,
    phone: str | None = None,
    default: str = "en",
) -> str:
    """Pick a supported language: sticky content-detected > requested > phone prefix > default."""
    for candidate in (sticky, requested, language_for_phone(phone) if phone else None):
        if candidate:
            code = candidate.lower()[:2]
            if code in SUPPORTED_LANGUAGES:
                return code
    return default if default in SUPPORTED_LANGUAGES else "en"


LANGUAGE_INSTRUCTIONS = {
    "de": "Antworte immer auf Deutsch.",
    "en": "Always reply in English.",
    "tr": "Her zaman Türkçe cevap ver.",
    "ar": "أجب دائماً بالعربية.",
    "fr": "Réponds toujours en français.",
    "es": "Responde siempre en español.",
}

MESSAGES: dict[str, dict[str, str]] = {
    "apology": {
        "de": "Entschuldigung, bitte versuche es nochmal!",
        "en": "Sorry, something went wrong. Please try again!",
        "tr": "Üzgünüm, bir sorun oluştu. Lütfen tekrar dene!",
        "ar": "عذراً، حدث خطأ ما. يرجى المحاولة مرة أخرى!",
        "fr": "Désolée, un problème est survenu. Réessaie, s'il te plaît !",
        "es": "Lo siento, algo salió mal. ¡Inténtalo de nuevo!",
    },
    "limit_reached": {
        "de": "Du hast dein Tageslimit an Nachrichten erreicht. Morgen bin ich wieder für dich da! 👩‍🍳",
        "en": "You've reached today's message limit. I'll be back for you tomorrow! 👩‍🍳",
        "tr": "Bugünkü mesaj sınırına ulaştın. Yarın yine buradayım! 👩‍🍳",
        "ar": "لقد وصلت إلى الحد اليومي للرسائل. سأكون هنا مجدداً غداً! 👩‍🍳",
        "fr": "Tu as atteint la limite de messages du jour. Je serai de retour demain ! 👩‍🍳",
        "es": "Has alcanzado el límite de mensajes de hoy. ¡Mañana vuelvo a estar aquí! 👩‍🍳",
    },
    "rate_limited": {
        "de": "Zu viele Anfragen. Bitte warte einen Moment.",
        "en": "Too many requests. Please wait a moment.",
        "tr": "Çok fazla istek. Lütfen biraz bekle.",
        "ar": "طلبات كثيرة جداً. يرجى الانتظار قليلاً.",
        "fr": "Trop de requêtes. Merci de patienter un instant.",
        "es": "Demasiadas solicitudes. Espera un momento, por favor.",
    },
    "unsubscribe_footer": {
        "de": "Antworte STOP, um dich abzumelden.",
        "en": "Reply STOP to unsubscribe.",
        "tr": "Abonelikten çıkmak için STOP yaz.",
        "ar": "أرسل STOP لإلغاء الاشتراك.",
        "fr": "Réponds STOP pour te désabonner.",
        "es": "Responde STOP para darte de baja.",
    },
    "subscribed": {
        "de": "Super! Du bekommst jetzt jede Woche neue Rezepte von mir. 🎉",
        "en": "Great! You'll now get new recipes from me every week. 🎉",
        "tr": "Harika! Artık her hafta benden yeni tarifler alacaksın. 🎉",
        "ar": "رائع! ستصلك الآن وصفات جديدة مني كل أسبوع. 🎉",
        "fr": "Super ! Tu recevras désormais de nouvelles recettes chaque semaine. 🎉",
        "es": "¡Genial! Ahora recibirás recetas nuevas cada semana. 🎉",
    },
    "unsubscribed": {
        "de": "Du wurdest abgemeldet. Schreib START, um wieder dabei zu sein.",
        "en": "You've been unsubscribed. Send START to join again.",
        "tr": "Abonelikten çıkarıldın. Tekrar katılmak için START yaz.",
        "ar": "تم إلغاء اشتراكك. أرسل START للاشتراك مجدداً.",
        "fr": "Tu es désabonné(e). Envoie START pour revenir.",
        "es": "Te has dado de baja. Envía START para volver.",
    },
    "text_only": {
        "de": "Ich kann bisher nur Textnachrichten lesen. Schreib mir einfach! ✍️",
        "en": "I can only read text messages for now. Just type to me! ✍️",
        "tr": "Şimdilik sadece yazılı mesajları okuyabiliyorum. Bana yaz! ✍️",
        "ar": "يمكنني حالياً قراءة الرسائل النصية فقط. اكتب لي! ✍️",
        "fr": "Je ne lis que les messages texte pour l'instant. Écris-moi ! ✍️",
        "es": "Por ahora solo puedo leer mensajes de texto. ¡Escríbeme! ✍️",
    },
    "weekly_pick": {
        "de": "Mein Küchen-Tipp der Woche",
        "en": "My kitchen pick of the week",
        "tr": "Haftanın mutfak önerim",
        "ar": "اختياري للمطبخ هذا الأسبوع",
        "fr": "Mon coup de cœur cuisine de la semaine",
        "es": "Mi recomendación de cocina de la semana",
    },
}

SUBSCRIBE_KEYWORDS = frozenset({"start", "subscribe", "abonnieren", "anmelden", "abone", "abonner", "suscribir"})
UNSUBSCRIBE_KEYWORDS = frozenset(
    {"stop", "unsubscribe", "abmelden", "abbestellen", "iptal", "désabonner", "desabonner", "baja", "cancelar"}
)


def message(key: str, language: str) -> str:
    texts = MESSAGES[key]
    return texts.get(language) or texts["en"]


def subscription_intent(text: str) -> bool | None:
    """True for a subscribe keyword, False for unsubscribe, None otherwise."""
    normalized = text.strip().strip("!.").lower()
    if normalized in SUBSCRIBE_KEYWORDS:
        return True
    if normalized in UNSUBSCRIBE_KEYWORDS:
        return False
    return None
