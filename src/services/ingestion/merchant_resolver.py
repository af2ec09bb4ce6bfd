"""
Merchant identity resolution.

Turns free-text merchant or sender strings into a stable merchant key and
maps keys onto the directory of known subscription billers.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from models.detection_candidate import Cadence

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

# "APPLE (X PREMIUM)" and friends bill on behalf of the wrapped service
_PROCESSOR_WRAPPER = re.compile(r"^(?:APPLE|STRIPE|PAYPAL|GOOGLE|PADDLE)\s*\(([^)]+)\)$")
_APPLE_DASH = re.compile(r"^APPLE\s*[-–—]\s*(.+)$")

# Applied in order, repeatedly, until the string stops changing
_STRIP_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"\s*\*+\s*\d+$"),                                # masked card digits: *1234
    re.compile(r"\s*#\s*\d+$"),                                  # store number: #0421
    re.compile(r"\s+\d{1,2}/\d{1,2}(?:/\d{2,4})?$"),             # date suffix: 03/14, 03/14/24
    re.compile(r"^(?:TST|SQ|PAYPAL|PP|SP)\s*\*\s*|^TST\s+"),     # processor prefix: SQ *, TST*
    re.compile(r"^WWW\."),
    re.compile(r"\.(?:COM|NET|ORG|IO|AI|SH|TV)$"),               # domain suffix
    re.compile(r"[\s.,;:*#\-]+$"),                               # trailing punctuation
)

_EMAIL_WITH_NAME = re.compile(r'^\s*"?([^"<]*?)"?\s*<([^>]+)>\s*$')
_SECOND_LEVEL_SUFFIXES = {"co", "com", "org", "net", "ac"}


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _strip_once(text: str) -> str:
    for wrapper in (_PROCESSOR_WRAPPER, _APPLE_DASH):
        match = wrapper.match(text)
        if match and match.group(1).strip():
            text = match.group(1)
    for pattern in _STRIP_PATTERNS:
        text = _collapse(pattern.sub("", text))
    return text


def normalize_merchant(raw: Optional[str]) -> str:
    """
    Normalize a merchant or sender string into a merchant key.

    Upper-cases, collapses whitespace and strips processor artifacts until a
    fixed point is reached, which makes the function idempotent. If stripping
    would leave nothing, the upper-cased, trimmed input is returned instead.
    """
    collapsed = _collapse((raw or "").upper())
    text = collapsed
    while True:
        stripped = _strip_once(text)
        if stripped == text:
            break
        text = stripped
    return text or collapsed


def merchant_text_from_sender(sender: str) -> str:
    """
    Best merchant text for an email sender.

    'Netflix <info@account.netflix.com>' gives 'Netflix'; a bare address
    such as 'billing@spotify.com' gives the registrable domain label 'spotify'.
    """
    sender = (sender or "").strip()
    address = sender
    match = _EMAIL_WITH_NAME.match(sender)
    if match:
        display_name, address = match.group(1).strip(), match.group(2).strip()
        if display_name and "@" not in display_name:
            return display_name

    domain = sender_domain(address)
    if not domain:
        return sender
    labels = domain.split(".")
    if len(labels) >= 3 and labels[-2] in _SECOND_LEVEL_SUFFIXES:
        return labels[-3]
    if len(labels) >= 2:
        return labels[-2]
    return labels[0]


def sender_domain(sender: str) -> str:
    """Lower-cased domain of an email address, or of a bare domain string."""
    sender = (sender or "").strip().lower()
    match = _EMAIL_WITH_NAME.match(sender)
    if match:
        sender = match.group(2).strip()
    if "@" in sender:
        sender = sender.rsplit("@", 1)[1]
    return sender.strip(" >.")


@dataclass(frozen=True)
class KnownMerchant:
    """Directory entry for a recognized subscription biller."""
    display_name: str
    provider_key: str
    aliases: Tuple[str, ...]
    typical_cadence: Cadence = Cadence.MONTHLY


KNOWN_MERCHANTS: Tuple[KnownMerchant, ...] = (
    KnownMerchant("Netflix", "netflix", ("NETFLIX", "NETFLIX.COM", "NFLX")),
    KnownMerchant("Spotify", "spotify", ("SPOTIFY", "SPOTIFY.COM", "SPOTIFY USA")),
    KnownMerchant("Amazon Prime", "amazon_prime", ("AMAZON PRIME", "AMZN PRIME", "PRIME VIDEO")),
    KnownMerchant("Apple", "apple", ("APPLE.COM", "APPLE COM BILL", "ITUNES")),
    KnownMerchant("Disney+", "disney_plus", ("DISNEY PLUS", "DISNEYPLUS", "DISNEY+")),
    KnownMerchant("Hulu", "hulu", ("HULU", "HULU.COM")),
    KnownMerchant("YouTube Premium", "youtube_premium", ("YOUTUBE PREMIUM", "YOUTUBE", "GOOGLE YOUTUBE")),
    KnownMerchant("Adobe Creative Cloud", "adobe", ("ADOBE", "ADOBE CREATIVE", "ADOBE CC")),
    KnownMerchant("Microsoft 365", "microsoft_365", ("MICROSOFT 365", "OFFICE 365", "MICROSOFT")),
    KnownMerchant("Dropbox", "dropbox", ("DROPBOX", "DROPBOX.COM")),
    KnownMerchant("OpenAI", "openai", ("OPENAI", "CHATGPT", "OPENAI CHATGPT SUBSCR")),
    KnownMerchant("Anthropic", "anthropic", ("ANTHROPIC", "CLAUDE.AI SUBSCRIPTION")),
    KnownMerchant("GitHub", "github", ("GITHUB", "GITHUB.COM")),
)


class MerchantResolver:
    """
    Resolves merchant keys and looks them up in the known-merchant directory.

    A key matches an alias when it equals the normalized alias or starts with
    it followed by a space; longer aliases win.
    """

    def __init__(self, known_merchants: Iterable[KnownMerchant] = KNOWN_MERCHANTS):
        self._aliases: List[Tuple[str, KnownMerchant]] = []
        for merchant in known_merchants:
            for alias in merchant.aliases:
                self._aliases.append((normalize_merchant(alias), merchant))
        self._aliases.sort(key=lambda pair: len(pair[0]), reverse=True)
        self._cache: Dict[str, Optional[KnownMerchant]] = {}

    def resolve(self, text: Optional[str]) -> str:
        return normalize_merchant(text)

    def lookup(self, merchant_key: str) -> Optional[KnownMerchant]:
        if merchant_key not in self._cache:
            found = None
            for alias, merchant in self._aliases:
                if merchant_key == alias or merchant_key.startswith(alias + " "):
                    found = merchant
                    break
            self._cache[merchant_key] = found
        return self._cache[merchant_key]

    def is_known(self, merchant_key: str) -> bool:
        return self.lookup(merchant_key) is not None

    def display_name(self, merchant_key: str) -> str:
        """Directory display name, or a title-cased rendering of the key."""
        merchant = self.lookup(merchant_key)
        if merchant:
            return merchant.display_name
        return merchant_key.title() if merchant_key else "Unknown merchant"
