"""
Parse pasted Partscheck / RepairConnection request text into quote form fields.
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

KNOWN_MAKES = [
    "Ford", "Holden", "Toyota", "Mazda", "Nissan", "Mitsubishi", "Subaru", "Honda",
    "Hyundai", "Kia", "BMW", "Mercedes", "Audi", "Volkswagen", "Porsche", "Volvo",
    "Jaguar", "Land Rover", "Range Rover", "Lexus", "Infiniti", "Acura", "Genesis",
    "Chevrolet", "Dodge", "Chrysler", "Jeep", "Cadillac", "Lincoln", "Buick",
    "Fiat", "Alfa Romeo", "Maserati", "Ferrari", "Lamborghini", "Bentley", "Rolls Royce",
    "Mini", "Smart", "Saab", "MG", "Haval", "Chery", "BYD", "Great Wall", "Geely",
    "Tesla", "Polestar", "Rivian", "Lucid",
]

FIELDS = (
    "quoteRef", "vin", "make", "model", "series", "auto", "body", "mthyr",
    "rego", "requiredBy", "customer", "address", "phone", "notes",
)


def detect_format(text: str) -> str:
    lower = (text or "").lower()
    if "required by:" in lower and "purchaser:" in lower:
        return "partscheck"
    if "received:" in lower and "bodyshop:" in lower:
        return "repairconnection"
    return "unknown"


def is_supported_format(text: str) -> bool:
    return detect_format(text) != "unknown"


def split_make_model(vehicle: str) -> tuple[str, str]:
    vehicle = (vehicle or "").strip()
    if not vehicle:
        return "", ""
    for make in KNOWN_MAKES:
        match = re.match(rf"^{re.escape(make)}\s+", vehicle, flags=re.IGNORECASE)
        if match:
            return make, vehicle[match.end():].strip()
    words = vehicle.split()
    if len(words) >= 2:
        return words[0], " ".join(words[1:])
    return vehicle, ""


def _transmission_is_auto(value: str) -> str:
    # Anything that is not explicitly manual is treated as automatic.
    return "false" if "manual" in (value or "").lower() else "true"


def _format_date(value: str) -> str:
    value = (value or "").strip()
    if re.match(r"^\d{1,2}/\d{1,2}/\d{4}", value):
        return value
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return value
    return parsed.strftime("%d/%m/%Y")


def _format_deadline(moment: datetime) -> str:
    hour12 = moment.hour % 12 or 12
    meridiem = "pm" if moment.hour >= 12 else "am"
    return f"{moment:%d/%m/%Y} {hour12}:{moment:%M}{meridiem}"


def _append_note(data: Dict, note: str) -> None:
    data["notes"] = f"{data['notes']} | {note}" if data.get("notes") else note


def _key_values(text: str):
    for raw in text.splitlines():
        line = raw.strip()
        if not line or ":" not in line:
            continue
        key, value = line.split(":", 1)
        yield key.strip().lower(), value.strip()


def _parse_partscheck(text: str) -> Dict:
    data: Dict = {"source": "partscheck"}
    simple = {
        "purchaser": "customer",
        "address": "address",
        "ph": "phone",
        "reference": "quoteRef",
        "make": "make",
        "model": "model",
        "model nr": "series",
        "vin": "vin",
        "body": "body",
        "mth/yr": "mthyr",
        "veh reg": "rego",
    }
    for key, value in _key_values(text):
        if key in simple:
            data[simple[key]] = value
        elif key == "required by":
            data["requiredBy"] = _format_date(value)
        elif key == "estimator":
            data["notes"] = f"Estimator: {value}"
        elif key == "trans":
            data["auto"] = _transmission_is_auto(value)
        elif key == "colour":
            _append_note(data, f"Colour: {value}")
        elif key == "claim nr":
            _append_note(data, f"Claim Nr: {value}")
    return data


def _parse_repairconnection(text: str, now: datetime) -> Dict:
    data: Dict = {"source": "repairconnection"}
    simple = {
        "bodyshop": "customer",
        "repairer address": "address",
        "telephone": "phone",
        "estimate number": "quoteRef",
        "manufactured": "mthyr",
        "registration": "rego",
        "vin": "vin",
        "body": "body",
    }
    noted = {
        "repairer contact": "Contact",
        "email": "Email",
        "insurer": "Insurer",
        "claim number": "Claim",
        "colour": "Colour",
    }
    for key, value in _key_values(text):
        if key in simple:
            data[simple[key]] = value
        elif key in noted:
            _append_note(data, f"{noted[key]}: {value}")
        elif key == "received":
            data["notes"] = f"Received: {value}"
        elif key == "required":
            # "0h:55m" is a countdown from now
            match = re.search(r"(\d+)h:(\d+)m", value)
            if match:
                delta = timedelta(hours=int(match.group(1)), minutes=int(match.group(2)))
                data["requiredBy"] = _format_deadline(now + delta)
            else:
                data["requiredBy"] = value
        elif key == "vehicle":
            data["make"], data["model"] = split_make_model(value)
        elif key == "transmission":
            data["auto"] = _transmission_is_auto(value)
    return data


def parse_quote_data(text: str, now: Optional[datetime] = None) -> Dict[str, str]:
    """
    Detect the request format and pull out the quote form fields.
    Unknown formats return the empty defaults with source "unknown".
    """
    # deadlines are stored as UTC
    now = now or datetime.now(timezone.utc)
    fmt = detect_format(text or "")
    if fmt == "partscheck":
        parsed = _parse_partscheck(text)
    elif fmt == "repairconnection":
        parsed = _parse_repairconnection(text, now)
    else:
        parsed = {"source": "unknown"}

    result = {field: parsed.get(field) or "" for field in FIELDS}
    result["auto"] = parsed.get("auto") or "true"
    result["source"] = parsed.get("source") or "unknown"
    return result


__all__ = [
    "KNOWN_MAKES",
    "detect_format",
    "is_supported_format",
    "split_make_model",
    "parse_quote_data",
]
