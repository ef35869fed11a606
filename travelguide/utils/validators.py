import re
from typing import List, Dict, Any, Optional

from travelguide.utils.config import get_settings

class GuideRequestValidator:
    """Validator for guide generation and geocoding requests"""

    @staticmethod
    def validate_prompt(prompt: Optional[str]) -> Dict[str, Any]:
        """Validate a free-text travel request"""
        errors = []
        warnings = []
        max_length = get_settings().MAX_PROMPT_LENGTH

        text = (prompt or "").strip()
        if not text:
            errors.append("Prompt is required")
        elif len(text) < 4:
            errors.append("Prompt is too short to plan a trip")
        elif len(text) > max_length:
            errors.append(f"Prompt cannot exceed {max_length} characters")

        # Destination and duration make for a much better guide
        if text and not re.search(r"\d+\s*(天|日|晚|夜|days?|nights?)", text, re.IGNORECASE):
            warnings.append("No trip duration found; a 5-day trip will be assumed")

        return {
            'valid': len(errors) == 0,
            'errors': errors,
            'warnings': warnings,
            'length': len(text)
        }

    @staticmethod
    def validate_address(address: Optional[str]) -> bool:
        """Free-text place description usable as a geocoding query"""
        if not address or not address.strip():
            return False
        return len(address.strip()) <= 200

    @staticmethod
    def validate_city(city: Optional[str]) -> bool:
        """City names: CJK, latin letters, spaces and a little punctuation"""
        if not city or not city.strip():
            return False
        pattern = r"^[一-龥A-Za-z\s\-\'\.·]{1,40}$"
        return re.match(pattern, city.strip()) is not None

    @staticmethod
    def validate_geocode_batch(items: List[Dict[str, str]]) -> Dict[str, Any]:
        """Validate a batch of {address, city} pairs"""
        errors = []
        max_items = get_settings().MAX_BATCH_GEOCODE_ITEMS

        if not items:
            errors.append("At least one address is required")
        elif len(items) > max_items:
            errors.append(f"Batch cannot exceed {max_items} addresses")

        for i, item in enumerate(items or []):
            if not GuideRequestValidator.validate_address(item.get('address')):
                errors.append(f"Item {i}: invalid address")
            if not GuideRequestValidator.validate_city(item.get('city')):
                errors.append(f"Item {i}: invalid city")

        return {
            'valid': len(errors) == 0,
            'errors': errors,
            'count': len(items or [])
        }
