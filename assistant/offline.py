"""
Keyword rules engine with the same generate() contract as GeminiClient.

Selected with LIFELINE_AI_BACKEND = "offline". It recognises the four
declared functions from plain English and turns their results into short
replies. It is a configured strategy, never an automatic fallback.
"""
import re

from blood.compatibility import CAN_DONATE_TO, CAN_RECEIVE_FROM
from .functions import FunctionName

BLOOD_TYPE_RE = re.compile(
    r"(?<![A-Za-z])(AB|A|B|O)\s*(\+ve\b|-ve\b|positive\b|negative\b|pos\b|neg\b|\+|-)",
    re.IGNORECASE,
)
PHONE_RE = re.compile(r"(\+?\d[\d\s-]{7,}\d)")
UNITS_RE = re.compile(r"(\d+)\s*(?:units?|bags?|pints?)\b", re.IGNORECASE)
DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
STOP_RE = re.compile(
    r"[.?!;]|\s+(?:within|for|with|urgently|asap|between|from|starting|contact|this|please|by|on)\b",
    re.IGNORECASE,
)

HELP_TEXT = (
    "I can find compatible donors (\"I need O- blood in Mumbai\"), list blood drives "
    "(\"blood drives in Pune\"), explain compatibility (\"who can AB+ receive from?\") "
    "or register an emergency request (\"Emergency: O- at City General, contact +91...\")."
)
MISSING_EMERGENCY_TEXT = (
    "To register an emergency request I need the blood type, the hospital name and a "
    "contact number. For example: \"Emergency: 2 units O- at City General, contact +911234567890\"."
)


def _blood_type(text):
    m = BLOOD_TYPE_RE.search(text)
    if not m:
        return None
    sign = m.group(2).lower()
    return m.group(1).upper() + ("+" if sign.startswith(("+", "pos")) else "-")


def _phrase_after(words, text):
    m = re.search(r"\b(?:%s)\s+(.+)" % words, text, re.IGNORECASE)
    if not m:
        return ""
    return STOP_RE.split(m.group(1), maxsplit=1)[0].strip(" ,")


def _location(text):
    phrase = _phrase_after("in|near|around", text) or _phrase_after("at", text)
    # "Lilavati Hospital, Mumbai" -> "Mumbai"
    parts = [p.strip() for p in phrase.split(",") if p.strip()]
    return parts[-1] if parts else ""


def _urgency(text, default="medium"):
    t = text.lower()
    if re.search(r"\b(critical|emergency|urgent|urgently|immediately)\b", t):
        return "critical"
    if re.search(r"\b(asap|high priority|soon)\b", t):
        return "high"
    if re.search(r"\b(low priority|no rush)\b", t):
        return "low"
    return default


def _hospital(text):
    phrase = _phrase_after("at", text)
    return phrase.split(",")[0].strip() if phrase else ""


def _call(name, args):
    return {
        "text": "",
        "functionCalls": [{"name": name.value, "args": args}],
        "content": {"role": "model", "parts": [{"functionCall": {"name": name.value, "args": args}}]},
    }


def _text(text):
    return {"text": text, "functionCalls": [], "content": {"role": "model", "parts": [{"text": text}]}}


def _failure_text(response):
    msg = response.get("message") or "That did not work."
    fallback = response.get("fallback")
    return f"Sorry, {msg[0].lower() + msg[1:]}" + (f" {fallback}" if fallback else "")


def summarize(name, response):
    if not response.get("success"):
        return _failure_text(response)

    if name == FunctionName.GET_BLOOD_COMPATIBILITY.value:
        return response["explanation"] + "."

    if name == FunctionName.FIND_COMPATIBLE_DONORS.value:
        n = response["totalFound"]
        head = (
            f"I found {n} compatible donor(s) for {response['requiredBloodType']} "
            f"near {response['searchLocation']}."
        )
        if not n:
            return head + " Try a nearby city, or register an emergency request so staff can help."
        lines = [
            f"- {d['bloodType']} in {d['location']}"
            + ("" if d["eligible"] else " (recently donated)")
            + (", contact available" if d["contactAvailable"] else "")
            for d in response["donors"]
        ]
        return head + "\n" + "\n".join(lines)

    if name == FunctionName.FIND_BLOOD_DRIVES.value:
        drives = response["bloodDrives"]
        if not drives:
            return f"There are no upcoming blood drives in {response['location']} right now."
        lines = [f"- {d['title']} on {d['eventDate']} at {d['address'] or d['location']}" for d in drives]
        return f"Upcoming blood drives in {response['location']}:\n" + "\n".join(lines)

    if name == FunctionName.REGISTER_EMERGENCY_REQUEST.value:
        steps = "\n".join(f"- {s}" for s in response["nextSteps"])
        return (
            f"Emergency request {response['requestId']} is registered for "
            f"{response['unitsNeeded']} unit(s) of {response['bloodType']} at "
            f"{response['hospitalName']}. Next steps:\n{steps}"
        )

    return "Done."


class OfflineModelClient:

    def generate(self, contents, tools=None):
        last = contents[-1] if contents else {}
        parts = last.get("parts") or []

        responses = [p["functionResponse"] for p in parts if "functionResponse" in p]
        if responses:
            return _text("\n\n".join(summarize(r["name"], r["response"]) for r in responses))

        text = " ".join(p.get("text", "") for p in parts).strip()
        return self.route(text)

    def route(self, text):
        t = text.lower()
        bt = _blood_type(text)

        if re.search(r"\b(emergency|register)\b", t):
            hospital = _hospital(text)
            phone = PHONE_RE.search(text)
            if not (bt and hospital and phone):
                return _text(MISSING_EMERGENCY_TEXT)
            args = {
                "bloodType": bt,
                "hospitalName": hospital,
                "contactInfo": re.sub(r"[\s-]", "", phone.group(1)),
                "urgency": _urgency(text, default="critical"),
            }
            units = UNITS_RE.search(text)
            if units:
                args["unitsNeeded"] = int(units.group(1))
            return _call(FunctionName.REGISTER_EMERGENCY_REQUEST, args)

        if re.search(r"\b(blood\s+drives?|drives?|camps?)\b", t):
            location = _location(text)
            if not location:
                return _text("Which city should I look for blood drives in?")
            args = {"location": location}
            dates = DATE_RE.findall(text)
            if dates:
                args["startDate"] = dates[0]
            if len(dates) > 1:
                args["endDate"] = dates[1]
            return _call(FunctionName.FIND_BLOOD_DRIVES, args)

        if bt and re.search(r"\breceive\b", t):
            return _call(FunctionName.GET_BLOOD_COMPATIBILITY, {"bloodType": bt, "checkType": CAN_RECEIVE_FROM})

        if bt and re.search(r"\b(donate|give)\b", t) and not re.search(r"\bdonors?\b", t):
            return _call(FunctionName.GET_BLOOD_COMPATIBILITY, {"bloodType": bt, "checkType": CAN_DONATE_TO})

        location = _location(text)
        if bt and location:
            return _call(
                FunctionName.FIND_COMPATIBLE_DONORS,
                {"requiredBloodType": bt, "hospitalLocation": location, "urgency": _urgency(text)},
            )

        if bt and "compatib" in t:
            return _call(FunctionName.GET_BLOOD_COMPATIBILITY, {"bloodType": bt, "checkType": CAN_DONATE_TO})

        if bt:
            return _text(f"Where is the {bt} blood needed? Tell me the city or hospital area.")

        return _text(HELP_TEXT)
