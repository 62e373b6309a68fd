"""Semantic location matching backed by an airport/city alias table."""

import re
from dataclasses import dataclass

# Airport code -> common city and airport names.
LOCATION_ALIASES: dict[str, list[str]] = {
    # India
    "blr": ["bengaluru", "bangalore", "kempegowda", "kempegowda international"],
    "del": ["delhi", "new delhi", "indira gandhi", "indira gandhi international", "igi"],
    "bom": ["mumbai", "bombay", "chhatrapati shivaji", "chhatrapati shivaji maharaj", "csia"],
    "mum": ["mumbai", "bombay"],
    "maa": ["chennai", "madras", "chennai international"],
    "ccu": ["kolkata", "calcutta", "netaji subhas chandra bose"],
    "hyd": ["hyderabad", "rajiv gandhi", "shamshabad"],
    "goi": ["goa", "dabolim", "manohar international", "mopa"],
    "pnq": ["pune", "lohegaon"],
    "cok": ["kochi", "cochin", "cochin international"],
    "amd": ["ahmedabad", "sardar vallabhbhai patel"],
    "jai": ["jaipur", "jaipur international"],
    "lko": ["lucknow", "chaudhary charan singh"],
    "ixc": ["chandigarh"],
    "gau": ["guwahati", "lokpriya gopinath bordoloi"],
    "ixr": ["ranchi", "birsa munda"],
    "pat": ["patna", "jay prakash narayan"],
    "bbi": ["bhubaneswar", "biju patnaik"],
    "ixb": ["bagdogra", "siliguri"],
    "sxr": ["srinagar", "sheikh ul alam"],
    "trv": ["thiruvananthapuram", "trivandrum"],
    "ixe": ["mangalore", "mangaluru"],
    "vtz": ["visakhapatnam", "vizag"],
    "idr": ["indore", "devi ahilya bai holkar"],
    "vns": ["varanasi", "lal bahadur shastri"],
    "ixz": ["port blair", "veer savarkar"],
    # International
    "jfk": ["new york", "john f kennedy", "kennedy"],
    "lhr": ["london", "heathrow", "london heathrow"],
    "lgw": ["london", "gatwick", "london gatwick"],
    "lcy": ["london", "city airport", "london city"],
    "dxb": ["dubai", "dubai international"],
    "sin": ["singapore", "changi", "singapore changi"],
    "hkg": ["hong kong", "chek lap kok"],
    "bkk": ["bangkok", "suvarnabhumi"],
    "kul": ["kuala lumpur", "klia"],
    "syd": ["sydney", "kingsford smith"],
    "mel": ["melbourne", "tullamarine"],
    "fra": ["frankfurt", "frankfurt am main"],
    "cdg": ["paris", "charles de gaulle"],
    "ams": ["amsterdam", "schiphol"],
    "ord": ["chicago", "ohare"],
    "lax": ["los angeles"],
    "sfo": ["san francisco"],
    "atl": ["atlanta", "hartsfield jackson"],
    "dfw": ["dallas", "fort worth"],
    "iah": ["houston", "george bush"],
    "ewr": ["newark", "liberty"],
    "bos": ["boston", "logan"],
    "sea": ["seattle", "tacoma", "seatac"],
    "mia": ["miami"],
    "yyz": ["toronto", "pearson"],
    "yvr": ["vancouver"],
    "pek": ["beijing", "capital"],
    "pvg": ["shanghai", "pudong"],
    "nrt": ["tokyo", "narita"],
    "hnd": ["tokyo", "haneda"],
    "icn": ["seoul", "incheon"],
    "auh": ["abu dhabi"],
    "doh": ["doha", "hamad"],
    "ist": ["istanbul"],
    "cai": ["cairo"],
    "jnb": ["johannesburg", "or tambo"],
}

WORD_OVERLAP_MIN_RATIO = 0.5

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")


@dataclass
class LocationMatch:
    matches: bool
    confidence: str  # exact | likely | possible | no_match
    reason: str


@dataclass
class RouteMatch:
    aligns: bool | None
    matched_endpoint: str | None = None  # from | to | both
    reason: str = ""


def normalize_location(location: str) -> str:
    return _NON_ALNUM_RE.sub("", location.lower().strip())


def _refers_to(location: str, names: list[str]) -> bool:
    return any(name in location or location in name for name in names)


def semantic_location_match(document_location: str | None, claim_location: str | None) -> LocationMatch:
    """Decide whether two free-text locations refer to the same place.

    Tried in order: exact or substring match (``exact``), a shared alias
    group such as ``BLR`` / ``Bengaluru`` (``likely``), and at least half
    of the significant words in common (``possible``).

    Args:
        document_location: Location as printed on the document.
        claim_location: Location the claimant reported.

    Returns:
        A ``LocationMatch`` describing the outcome and why.
    """
    if not document_location or not claim_location:
        return LocationMatch(False, "no_match", "Missing location data")

    doc = normalize_location(document_location)
    claim = normalize_location(claim_location)
    if not doc or not claim:
        return LocationMatch(False, "no_match", "Missing location data")

    if doc == claim:
        return LocationMatch(True, "exact", "Exact match")

    if claim in doc or doc in claim:
        return LocationMatch(True, "exact", f'"{document_location}" contains "{claim_location}"')

    for code, aliases in LOCATION_ALIASES.items():
        names = [code, *aliases]
        if _refers_to(doc, names) and _refers_to(claim, names):
            return LocationMatch(
                True,
                "likely",
                f'Both "{document_location}" and "{claim_location}" refer to the same '
                f"location ({code.upper()})",
            )

    doc_words = [w for w in doc.split() if len(w) > 2]
    claim_words = [w for w in claim.split() if len(w) > 2]
    common = [w for w in doc_words if w in claim_words]
    if common and len(common) >= min(len(doc_words), len(claim_words)) * WORD_OVERLAP_MIN_RATIO:
        return LocationMatch(True, "possible", f'Partial match: common words "{", ".join(common)}"')

    return LocationMatch(
        False,
        "no_match",
        f'No relationship found between "{document_location}" and "{claim_location}"',
    )


def match_route(origin: str | None, destination: str | None, claim_location: str | None) -> RouteMatch:
    """Check a claim location against either endpoint of a document route."""
    if not claim_location:
        return RouteMatch(None, reason="Missing claim location")
    if not origin and not destination:
        return RouteMatch(None, reason="No route information in document")

    from_match = semantic_location_match(origin, claim_location) if origin else None
    to_match = semantic_location_match(destination, claim_location) if destination else None
    from_ok = bool(from_match and from_match.matches)
    to_ok = bool(to_match and to_match.matches)

    if from_ok and to_ok:
        return RouteMatch(
            True, "both", f'Claim location "{claim_location}" matches both origin and destination'
        )
    if from_ok:
        return RouteMatch(True, "from", f'Claim location "{claim_location}" matches departure: {origin}')
    if to_ok:
        return RouteMatch(True, "to", f'Claim location "{claim_location}" matches arrival: {destination}')

    route = " → ".join(p for p in (origin, destination) if p)
    return RouteMatch(
        False, reason=f'Document route ({route}) does not include claim location "{claim_location}"'
    )
