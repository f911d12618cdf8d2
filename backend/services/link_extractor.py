import re

from models.schemas import MeetingLink, ProviderKind

_SCHEME = r"(?:https?://)?"
_SUBDOMAINS = r"(?:[a-z0-9-]+\.)*"
# A path ends at whitespace, a query string, or an HTML attribute/tag delimiter.
_PATH = r"[^\s?\"'<>]+"

_PATTERNS = [
    (ProviderKind.GOOGLE_MEET, rf"{_SCHEME}meet\.google\.com/[a-z0-9-]+"),
    (ProviderKind.TEAMS, rf"{_SCHEME}teams\.microsoft\.com/l/meetup-join/{_PATH}"),
    (ProviderKind.TEAMS, rf"{_SCHEME}teams\.live\.com/meet/{_PATH}"),
    (ProviderKind.ZOOM, rf"{_SCHEME}{_SUBDOMAINS}zoom\.us/j/\d+"),
    (ProviderKind.ZOOM, rf"{_SCHEME}{_SUBDOMAINS}zoom\.us/my/{_PATH}"),
    (
        ProviderKind.UNKNOWN,
        rf"{_SCHEME}{_SUBDOMAINS}(?:webex\.com|gotomeeting\.com|whereby\.com)/{_PATH}",
    ),
]

# One alternation so a single left-to-right scan yields matches in text order.
_LINK_RE = re.compile(
    "|".join(f"(?P<p{i}>{pattern})" for i, (_, pattern) in enumerate(_PATTERNS)),
    re.IGNORECASE,
)

PRIORITY = (ProviderKind.GOOGLE_MEET, ProviderKind.TEAMS, ProviderKind.ZOOM)


def _with_scheme(url: str) -> str:
    if url.lower().startswith(("http://", "https://")):
        return url
    return "https://" + url


def find_links(*texts: str | None) -> list[MeetingLink]:
    """Return every conferencing link in ``texts``, in discovery order."""
    links = []
    for text in texts:
        if not text:
            continue
        for match in _LINK_RE.finditer(text):
            index = int(match.lastgroup[1:])
            links.append(
                MeetingLink(url=_with_scheme(match.group()), provider=_PATTERNS[index][0])
            )
    return links


def select_primary(links: list[MeetingLink]) -> MeetingLink | None:
    """Pick Meet, then Teams, then Zoom, then whatever was found first."""
    if not links:
        return None
    for provider in PRIORITY:
        for link in links:
            if link.provider == provider:
                return link
    return links[0]


def primary_link(*texts: str | None) -> MeetingLink | None:
    return select_primary(find_links(*texts))


def classify_url(url: str) -> ProviderKind | None:
    """Classify a single URL, or return None when it is not a known host."""
    links = find_links(url)
    return links[0].provider if links else None
