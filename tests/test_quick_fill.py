from datetime import datetime, timedelta, timezone

from core.quick_fill import detect_format, is_supported_format, parse_quote_data, split_make_model


PARTSCHECK = """
Required By: 2025-08-21
Purchaser: Smith Panels
Address: 12 Main St, Perth
Ph: 0400 111 222
Reference: PC-7781
Estimator: Dave
Make: Toyota
Model: Corolla
Model Nr: ZRE182
VIN: JTNKU3JE60J123456
Body: Hatch
Mth/Yr: 03/2016
Veh Reg: 1ABC234
Trans: Manual
Colour: Silver
Claim Nr: CL-99
"""

REPAIRCONNECTION = """
Received: 19/08/2025 9:00am
Required: 2h:30m
Bodyshop: Northside Repairs
Repairer Address: 4 Side Rd
Telephone: 08 9000 0000
Estimate Number: RC-5512
Vehicle: Land Rover Discovery Sport
Transmission: Automatic
Registration: XYZ987
Insurer: AcmeCover
"""


def test_detect_format():
    assert detect_format(PARTSCHECK) == "partscheck"
    assert detect_format(REPAIRCONNECTION) == "repairconnection"
    assert detect_format("hello there") == "unknown"
    assert is_supported_format("") is False


def test_parse_partscheck_fields():
    data = parse_quote_data(PARTSCHECK)
    assert data["source"] == "partscheck"
    assert data["customer"] == "Smith Panels"
    assert data["phone"] == "0400 111 222"
    assert data["quoteRef"] == "PC-7781"
    assert data["make"] == "Toyota"
    assert data["series"] == "ZRE182"
    assert data["rego"] == "1ABC234"
    assert data["requiredBy"] == "21/08/2025"
    assert data["auto"] == "false"
    assert data["notes"] == "Estimator: Dave | Colour: Silver | Claim Nr: CL-99"


def test_parse_repairconnection_countdown_and_vehicle():
    now = datetime(2025, 8, 19, 10, 15)
    data = parse_quote_data(REPAIRCONNECTION, now=now)
    assert data["source"] == "repairconnection"
    assert data["customer"] == "Northside Repairs"
    assert data["quoteRef"] == "RC-5512"
    assert data["make"] == "Land Rover"
    assert data["model"] == "Discovery Sport"
    assert data["auto"] == "true"
    assert data["requiredBy"] == "19/08/2025 12:45pm"
    assert data["notes"].startswith("Received: 19/08/2025 9:00am")
    assert "Insurer: AcmeCover" in data["notes"]


def test_unknown_text_returns_empty_defaults():
    data = parse_quote_data("nothing useful")
    assert data["source"] == "unknown"
    assert data["make"] == ""
    assert data["auto"] == "true"


def test_split_make_model():
    assert split_make_model("mercedes Benz C200") == ("Mercedes", "Benz C200")
    assert split_make_model("Zastava Koral") == ("Zastava", "Koral")
    assert split_make_model("Tesla") == ("Tesla", "")
    assert split_make_model("") == ("", "")


def test_countdown_runs_from_utc_clock():
    before = datetime.now(timezone.utc).replace(tzinfo=None, second=0, microsecond=0)
    data = parse_quote_data(REPAIRCONNECTION)
    after = datetime.now(timezone.utc).replace(tzinfo=None)

    due = datetime.strptime(data["requiredBy"], "%d/%m/%Y %I:%M%p")
    countdown = timedelta(hours=2, minutes=30)
    assert before + countdown <= due <= after + countdown
