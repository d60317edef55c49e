from django import forms

from core.errors import InvalidBloodType
from .compatibility import normalize_blood_type
from .models import URGENCY_LEVELS


class EmergencyRequestForm(forms.Form):
    blood_type = forms.CharField(max_length=20)
    hospital_name = forms.CharField(max_length=150)
    contact_info = forms.CharField(max_length=150)
    urgency = forms.ChoiceField(choices=URGENCY_LEVELS)
    units_needed = forms.IntegerField(min_value=1, required=False)
    hospital_location = forms.CharField(max_length=100, required=False)

    # camelCase keys used by the assistant and JSON callers
    FIELD_ALIASES = {
        "bloodType": "blood_type",
        "hospitalName": "hospital_name",
        "contactInfo": "contact_info",
        "unitsNeeded": "units_needed",
        "hospitalLocation": "hospital_location",
    }

    @classmethod
    def from_payload(cls, payload):
        data = {}
        for key, value in (payload or {}).items():
            name = cls.FIELD_ALIASES.get(key, key)
            if isinstance(value, str):
                value = value.strip()
            if name == "urgency" and isinstance(value, str):
                value = value.lower()
            # model function calls send numbers as floats
            if name == "units_needed" and isinstance(value, float) and value.is_integer():
                value = int(value)
            data[name] = value
        return cls(data=data)

    def clean_blood_type(self):
        try:
            return normalize_blood_type(self.cleaned_data.get("blood_type"))
        except InvalidBloodType as e:
            raise forms.ValidationError(str(e))

    def clean_units_needed(self):
        return self.cleaned_data.get("units_needed") or 1


class BloodDriveSearchForm(forms.Form):
    location = forms.CharField(max_length=100)
    start_date = forms.DateField(required=False, input_formats=["%Y-%m-%d"])
    end_date = forms.DateField(required=False, input_formats=["%Y-%m-%d"])

    FIELD_ALIASES = {"startDate": "start_date", "endDate": "end_date"}

    @classmethod
    def from_payload(cls, payload):
        data = {cls.FIELD_ALIASES.get(k, k): v for k, v in (payload or {}).items()}
        return cls(data=data)

    def clean(self):
        cleaned = super().clean()
        start, end = cleaned.get("start_date"), cleaned.get("end_date")
        if start and end and end < start:
            raise forms.ValidationError("endDate must not be before startDate.")
        return cleaned
