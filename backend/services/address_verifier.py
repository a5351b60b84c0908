"""
Address Verifier for Smart Locator
Normalizes raw Indian shipping addresses with Gemini and India Post data

Flow per address:
1. precheck() - emails and testing orders are skipped before any credit is reserved
2. India Post lookup for the PIN found in the raw text
3. Gemini call returning the address as a JSON object
4. Local corrections: locality table, Remaining clean-up, PIN verification,
   directional landmark prefix, duplicate-word removal, Village prefix
5. Result dict with remarks joined by "; "

Any Gemini failure (API error, empty or unparseable output) raises
ExternalServiceError so the caller can refund the reserved credit.
"""
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from services.gemini_service import generate_response, parse_json_response
from services.india_post import get_india_post_data
from utils.errors import ExternalServiceError

logger = logging.getLogger(__name__)

# ==================== KEYWORDS ====================
TESTING_KEYWORDS = ['test', 'testing', 'asdf', 'qwer', 'zxcv', 'random', 'gjnj', 'fgjnj']

CORE_MEANINGLESS_WORDS = [
    "ddadu", "ai", "add", "add-", "raw", "dumping", "grand", "dumping grand",
    "chd", "chd-", "chandigarh", "chandigarh-", "west", "sector", "sector-",
    "house", "no", "no#", "house no", "house no#", "floor", "first", "first floor",
    "majra", "colony", "dadu", "dadu majra", "shop", "wine", "wine shop", "number",
    "tq", "job", "dist"
]

MEANINGLESS_REGEX = re.compile(
    r"\b(?:" + "|".join(re.escape(w) for w in CORE_MEANINGLESS_WORDS + TESTING_KEYWORDS) + r")\b",
    re.IGNORECASE
)

DIRECTIONAL_KEYWORDS = ['near', 'opposite', 'back side', 'front side', 'behind', 'opp']

PIN_REGEX = re.compile(r"\b\d{6}\b")
EMAIL_REGEX = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)

SHORT_ADDRESS_CHARS = 35
SUCCESS_REMARK = "Address verified and formatted successfully."

# Localities whose P.O. Gemini tends to get wrong
LOCALITY_LOOKUP = {
    "boduppal": {"P.O.": "Boduppal", "DIST.": "Hyderabad", "State": "Telangana", "PIN": "500092"},
    "putlibowli": {"P.O.": "Putlibowli", "DIST.": "Hyderabad", "State": "Telangana", "PIN": "500095"},
}

# ==================== PROMPTS ====================
_PROMPT_HEADER = (
    "You are an expert Indian address verifier and formatter. Process the raw address below "
    "and respond with a single JSON object. Respond in English only and translate every "
    "extracted component to English. Correct common spelling, phonetic and short-form errors "
    "(\"rd\" -> \"Road\", \"nager\" -> \"Nagar\", \"nd\" -> \"2nd\", \"lean\" -> \"Lane\"). "
    "Remove duplicate components that appear consecutively "
    "(\"Gandhi Street Gandhi Street\" -> \"Gandhi Street\").\n"
    "Your response must contain the following keys:\n"
    "1. \"H.no.\", \"Flat No.\", \"Plot No.\", \"Room No.\", \"Building No.\", \"Block No.\", "
    "\"Ward No.\", \"Gali No.\", \"Zone No.\": only the number or alphanumeric sequence "
    "(e.g. '1-26', 'A/25'); null if not found.\n"
    "2. \"Colony\", \"Street\", \"Locality\", \"Building Name\", \"House Name\", \"Floor\": the name.\n"
    "3. \"P.O.\": the official Post Office name prefixed with \"P.O.\" (e.g. \"P.O. Boduppal\").\n"
    "4. \"Tehsil\": the official Tehsil/SubDistrict prefixed with \"Tehsil\" (e.g. \"Tehsil Pune\").\n"
    "5. \"DIST.\": the official District.\n"
    "6. \"State\": the official State.\n"
    "7. \"PIN\": the verified 6-digit PIN. If the raw address has a wrong PIN, provide the correct one.\n"
    "8. \"Landmark\": a specific named landmark (e.g. \"Apollo Hospital\"), not a generic type. "
    "Leave out directional words such as 'near', 'opposite' or 'behind'.\n"
    "9. \"Remaining\": any text that fits no other field, without filler words such as 'job', "
    "'raw', 'add-', 'tq', 'dist' and without country, state, district or PIN.\n"
)

_FORMATTED_ADDRESS_FULL = (
    "10. \"FormattedAddress\": a single clean shipping-ready line with all specific details "
    "(H.no., Room No., etc.) followed by locality, street, colony, P.O., Tehsil and District. "
    "Do NOT include the State or PIN. Separate components with commas. Do not invent information.\n"
)

_FORMATTED_ADDRESS_STRICT = (
    "10. \"FormattedAddress\": a single clean line with the detailed house/street/locality/colony "
    "information only. STRICTLY DO NOT include any landmark, P.O., Tehsil, District, State or PIN. "
    "Separate components with commas.\n"
)

_PROMPT_FOOTER = (
    "11. \"LocationType\": e.g. \"Village\", \"Town\", \"City\", \"Urban Area\".\n"
    "12. \"AddressQuality\": one of Very Good, Good, Medium, Bad, Very Bad.\n"
    "13. \"LocationSuitability\": courier-friendliness in India, one of Prime Location, "
    "Tier 1 & 2 Cities, Remote/Difficult Location, Non-Serviceable Location.\n"
    "Raw Address: \"{address}\"\n"
)

NAME_PROMPT = (
    "Clean and correct the following customer name. Remove any numbers or special characters "
    "and translate the name to English if needed. Provide only the cleaned name with no other "
    "text. Name: \"{name}\""
)


def build_address_prompt(address: str, postal_data: Dict[str, Any], strict: bool = False) -> str:
    prompt = _PROMPT_HEADER
    prompt += _FORMATTED_ADDRESS_STRICT if strict else _FORMATTED_ADDRESS_FULL
    prompt += _PROMPT_FOOTER.format(address=address)

    if postal_data.get("PinStatus") == "Success":
        prompt += (
            f"Official Postal Data: {json.dumps(postal_data['PostOfficeList'])}\n"
            "Choose the post office from this list that best matches the locality and use it for "
            "'P.O.', 'Tehsil' and 'DIST.'.\n"
        )
    else:
        prompt += (
            "The address has no PIN or the PIN is invalid. Find and verify the correct 6-digit PIN; "
            "if none can be found set \"PIN\" to null.\n"
        )
    prompt += "Your entire response MUST be one valid JSON object containing ONLY the keys listed above."
    return prompt


# ==================== TEXT HELPERS ====================

def stringify_scalars(parsed: Dict[str, Any]) -> Dict[str, Any]:
    """Turn JSON numbers and booleans in the model's object into strings."""
    return {
        key: str(value) if value is not None and not isinstance(value, (str, list, dict)) else value
        for key, value in parsed.items()
    }


def extract_pin(text: Any) -> Optional[str]:
    match = PIN_REGEX.search(str(text or ""))
    return match.group(0) if match else None


def remove_adjacent_duplicates(text: str) -> str:
    """'Gandhi gandhi Street' -> 'Gandhi Street' (case-insensitive, words only)."""
    if not text:
        return text
    words = text.split(" ")
    cleaned = [w for i, w in enumerate(words) if i == 0 or w.lower() != words[i - 1].lower()]
    return " ".join(cleaned)


def get_postal_data_by_locality(locality: str) -> Optional[Dict[str, str]]:
    return LOCALITY_LOOKUP.get((locality or "").lower())


def verify_and_correct_address(parsed: Dict[str, Any], remarks: List[str]):
    """Override Gemini's P.O./PIN when the locality is in the hard-coded lookup table."""
    locality = str(parsed.get("Locality") or parsed.get("Colony") or "")
    ai_po = str(parsed.get("P.O.") or "")
    if not locality or not ai_po:
        return

    po_name = ai_po.lower()
    if po_name.startswith("p.o. "):
        po_name = po_name[5:]
    if locality.lower() == po_name:
        return

    corrected = get_postal_data_by_locality(locality)
    if not corrected:
        return

    corrected_po = f"P.O. {corrected['P.O.'].lower()}"
    if ai_po.lower() == corrected_po:
        return

    remarks.append(f'P.O. conflict: Corrected P.O. from "{ai_po}" to "{corrected_po}" (Hardcoded Lookup)')
    parsed["P.O."] = corrected_po
    parsed["Tehsil"] = parsed.get("Tehsil") or f"Tehsil {corrected['DIST.'].lower()}"
    parsed["DIST."] = corrected["DIST."]
    parsed["State"] = corrected["State"]
    if parsed.get("PIN") != corrected["PIN"]:
        remarks.append(f'PIN conflict: Corrected PIN from "{parsed.get("PIN")}" to "{corrected["PIN"]}" (Hardcoded Lookup)')
        parsed["PIN"] = corrected["PIN"]


def clean_remaining(parsed: Dict[str, Any]):
    """Strip filler words, the PIN, state and district out of the Remaining field."""
    remaining = parsed.get("Remaining")
    if not remaining:
        return

    text = MEANINGLESS_REGEX.sub("", str(remaining).strip())
    text = re.sub(r"\s+", " ", text).strip()

    pin_match = PIN_REGEX.search(text)
    if pin_match and parsed.get("PIN") and pin_match.group(0) == str(parsed["PIN"]).strip():
        text = text.replace(pin_match.group(0), "", 1).strip()

    for key in ("State", "DIST."):
        value = str(parsed.get(key) or "").lower()
        if value and value in text.lower():
            text = text.lower().replace(value, "", 1).strip()

    parsed["Remaining"] = text


def format_landmark(landmark: Any, raw_address: str) -> str:
    """Prefix the landmark with the directional word used in the raw address, or 'Near'."""
    value = str(landmark or "").strip()
    if not value:
        return ""

    raw_lower = raw_address.lower()
    found = next((k for k in DIRECTIONAL_KEYWORDS if k in raw_lower), None)
    if not found:
        return f"Near {value}"

    match = re.search(rf"\b{re.escape(found)}\b", raw_address, re.IGNORECASE)
    word = match.group(0) if match else found
    return f"{word[0].upper()}{word[1:]} {value}"


def short_address_remark(parsed: Dict[str, Any]) -> Optional[str]:
    formatted = parsed.get("FormattedAddress") or ""
    if formatted and len(formatted) < SHORT_ADDRESS_CHARS and parsed.get("AddressQuality") not in ("Very Good", "Good"):
        return (
            f"CRITICAL_ALERT: Formatted address is short ({len(formatted)} chars). "
            "Manual verification recommended."
        )
    return None


def skipped_result(address: str, customer_name: Optional[str], message: str) -> Dict[str, Any]:
    return {
        "status": "Skipped",
        "message": message,
        "addressQuality": "Very Bad",
        "pin": extract_pin(address) or "",
        "customerCleanName": customer_name,
        "addressLine1": address,
    }


class AddressVerifier:
    """
    Gemini + India Post address normalizer

    The model call and the PIN lookup are injectable so tests can run without
    network access.
    """

    def __init__(
        self,
        llm: Optional[Callable[[str], Awaitable[str]]] = None,
        postal_lookup: Optional[Callable[[Optional[str]], Awaitable[Dict[str, Any]]]] = None
    ):
        self.llm = llm or generate_response
        self.postal_lookup = postal_lookup or get_india_post_data

    def precheck(self, address: str, customer_name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Return a Skipped result for emails and testing orders, else None."""
        if EMAIL_REGEX.search(address):
            return skipped_result(address, customer_name, "Invalid Address: Contains an email.")

        name_lower = str(customer_name or "").lower()
        address_lower = address.lower()
        if any(k in name_lower or k in address_lower for k in TESTING_KEYWORDS):
            return skipped_result(address, customer_name, "Testing Order")
        return None

    async def _ask_for_address(self, address: str, postal_data: Dict[str, Any], strict: bool) -> Dict[str, Any]:
        text = await self.llm(build_address_prompt(address, postal_data, strict=strict))
        if not text:
            raise ExternalServiceError("Gemini API failed to return text.")
        return stringify_scalars(parse_json_response(text))

    async def _clean_name(self, customer_name: Optional[str], remarks: List[str]) -> Optional[str]:
        if not customer_name:
            return customer_name
        try:
            cleaned = await self.llm(NAME_PROMPT.format(name=customer_name))
        except ExternalServiceError as e:
            logger.warning(f"Name cleaning failed: {e.reason}")
            cleaned = None
        if cleaned and cleaned.strip():
            return cleaned.strip()
        remarks.append("Warning: Name cleaning failed, using raw name.")
        return customer_name

    async def _resolve_pin(
        self,
        parsed: Dict[str, Any],
        initial_pin: Optional[str],
        postal_data: Dict[str, Any],
        remarks: List[str]
    ):
        """
        Reconcile the PIN in the raw text with the one Gemini returned.

        Returns (final_pin, primary_post_office).
        """
        final_pin = extract_pin(parsed.get("PIN")) or initial_pin
        primary_po = postal_data["PostOfficeList"][0] if postal_data.get("PinStatus") == "Success" else {}

        if not final_pin:
            remarks.append("CRITICAL_ALERT: PIN not found after verification attempts. Manual check needed.")
            return None, primary_po

        if postal_data.get("PinStatus") != "Success" or (initial_pin and final_pin != initial_pin):
            ai_postal = await self.postal_lookup(final_pin)
            if ai_postal.get("PinStatus") == "Success":
                primary_po = ai_postal["PostOfficeList"][0] if ai_postal["PostOfficeList"] else {}
                if initial_pin and initial_pin != final_pin:
                    remarks.append(f"CRITICAL_ALERT: Wrong PIN ({initial_pin}) corrected to ({final_pin}).")
                elif not initial_pin:
                    remarks.append(f"Correct PIN ({final_pin}) added by AI.")
            else:
                remarks.append(f"CRITICAL_ALERT: AI-provided PIN ({final_pin}) not verified by API.")
                final_pin = initial_pin
        elif initial_pin:
            remarks.append(f"PIN ({initial_pin}) verified successfully.")

        return final_pin, primary_po

    async def verify(self, address: str, customer_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Full verification for signed-in clients (two Gemini calls: address, then name).

        Raises:
            ExternalServiceError: the address call failed or returned unusable output
        """
        remarks: List[str] = []
        initial_pin = extract_pin(address)
        postal_data = await self.postal_lookup(initial_pin)

        parsed = await self._ask_for_address(address, postal_data, strict=False)
        verify_and_correct_address(parsed, remarks)
        clean_remaining(parsed)

        cleaned_name = await self._clean_name(customer_name, remarks)
        final_pin, primary_po = await self._resolve_pin(parsed, initial_pin, postal_data, remarks)

        short_remark = short_address_remark(parsed)
        if short_remark:
            remarks.append(short_remark)

        landmark = remove_adjacent_duplicates(format_landmark(parsed.get("Landmark"), address))
        formatted = remove_adjacent_duplicates(parsed.get("FormattedAddress") or address)
        if "village" in address.lower() and formatted:
            formatted = f"Village {formatted}"

        if not remarks:
            remarks.append(SUCCESS_REMARK)

        return {
            "status": "Success",
            "customerRawName": customer_name,
            "customerCleanName": cleaned_name,
            "addressLine1": formatted,
            "landmark": landmark,
            "postOffice": primary_po.get("Name") or parsed.get("P.O.") or "",
            "tehsil": primary_po.get("Taluk") or parsed.get("Tehsil") or "",
            "district": primary_po.get("District") or parsed.get("DIST.") or "",
            "state": primary_po.get("State") or parsed.get("State") or "",
            "pin": final_pin,
            "addressQuality": parsed.get("AddressQuality") or "Medium",
            "locationType": parsed.get("LocationType") or "Unknown",
            "locationSuitability": parsed.get("LocationSuitability") or "Unknown",
            "remarks": "; ".join(remarks).strip(),
        }

    async def verify_public(self, address: str, customer_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Free single-address check for the public page.

        One Gemini call; the name is cleaned locally and addressLine1 is a single
        comma-joined line ending in PIN and INDIA.
        """
        remarks: List[str] = []
        initial_pin = extract_pin(address)
        postal_data = await self.postal_lookup(initial_pin)

        parsed = await self._ask_for_address(address, postal_data, strict=True)
        cleaned_name = re.sub(r"\s+", " ", re.sub(r"[^\w\s]", "", customer_name or "")).strip() or None

        final_pin, primary_po = await self._resolve_pin(parsed, initial_pin, postal_data, remarks)

        short_remark = short_address_remark(parsed)
        if short_remark:
            remarks.append(short_remark)

        landmark = format_landmark(parsed.get("Landmark"), address)

        remaining = str(parsed.get("Remaining") or "").strip()
        if remaining:
            remarks.append(f"Remaining/Ambiguous Text: {remaining}")
        elif not remarks:
            remarks.append(SUCCESS_REMARK)

        post_office = str(parsed.get("P.O.") or "").replace("P.O. ", "")
        tehsil = str(parsed.get("Tehsil") or "").replace("Tehsil ", "")
        district = str(parsed.get("DIST.") or "")
        state = str(parsed.get("State") or "")

        # Scrub postal components the model leaked into FormattedAddress
        primary = parsed.get("FormattedAddress") or MEANINGLESS_REGEX.sub("", address).strip()
        leaked = [
            post_office or primary_po.get("Name"),
            tehsil or primary_po.get("Taluk"),
            district or primary_po.get("District"),
            state or primary_po.get("State"),
            final_pin,
            "INDIA",
            parsed.get("Landmark"),
        ]
        leaked = [str(c).strip() for c in leaked if c and str(c).strip()]
        if leaked:
            scrubber = re.compile("(?:" + "|".join(re.escape(c) for c in leaked) + ")", re.IGNORECASE)
            primary = scrubber.sub("", primary)
        primary = re.sub(r",\s*,", ",", primary).strip().rstrip(",").strip()

        components = [
            primary,
            landmark,
            f"P.O. {post_office}" if post_office else None,
            tehsil,
            district,
            state,
            final_pin,
            "INDIA",
        ]
        single_line = ", ".join(str(c) for c in components if c and str(c).strip())

        return {
            "status": "Success",
            "customerRawName": customer_name,
            "customerCleanName": cleaned_name,
            "addressLine1": single_line,
            "landmark": landmark,
            "postOffice": post_office or primary_po.get("Name") or "",
            "tehsil": tehsil or primary_po.get("Taluk") or "",
            "district": district or primary_po.get("District") or "",
            "state": state or primary_po.get("State") or "",
            "pin": final_pin,
            "addressQuality": parsed.get("AddressQuality") or "Medium",
            "locationType": parsed.get("LocationType") or "Unknown",
            "locationSuitability": parsed.get("LocationSuitability") or "Unknown",
            "remarks": "; ".join(remarks).strip(),
        }


_verifier_instance = None


def get_address_verifier() -> AddressVerifier:
    """FastAPI dependency: process-wide verifier."""
    global _verifier_instance
    if _verifier_instance is None:
        _verifier_instance = AddressVerifier()
    return _verifier_instance
