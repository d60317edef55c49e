import json

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from core.errors import InvalidBloodType, ValidationError, failure
from .compatibility import CAN_DONATE_TO, lookup_compatibility, normalize_blood_type
from .donor_matches import match_summary, matches_for_donor, respond_to_match
from .drives import find_blood_drives
from .emergency import submit_emergency_request
from .matching import query_compatible_donors

STATUS_FOR_ERROR = {
    "validation_error": 400,
    "invalid_blood_type": 400,
    "store_error": 503,
}


def json_body(request):
    try:
        data = json.loads(request.body or b"{}")
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Request body must be JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def envelope_response(result, ok_status=200):
    if result.get("success"):
        return JsonResponse(result, status=ok_status)
    return JsonResponse(result, status=STATUS_FOR_ERROR.get(result.get("error"), 500))


@require_GET
def compatibility_view(request, blood_type):
    direction = request.GET.get("direction", CAN_DONATE_TO)
    try:
        bt = normalize_blood_type(blood_type)
        types = lookup_compatibility(bt, direction)
    except InvalidBloodType as e:
        return JsonResponse(failure(e), status=400)
    return JsonResponse({"success": True, "bloodType": bt, "direction": direction, "compatibleTypes": types})


@csrf_exempt
@require_POST
def donor_search_view(request):
    try:
        payload = json_body(request)
    except ValidationError as e:
        return JsonResponse(failure(e), status=400)
    return envelope_response(query_compatible_donors(payload))


@csrf_exempt
@require_POST
def emergency_request_view(request):
    try:
        payload = json_body(request)
    except ValidationError as e:
        return JsonResponse(failure(e, emergency=True), status=400)
    return envelope_response(submit_emergency_request(payload), ok_status=201)


@require_GET
def blood_drives_view(request):
    params = {k: request.GET.get(k) for k in ("location", "startDate", "endDate") if request.GET.get(k)}
    return envelope_response(find_blood_drives(params))


def _login_failure():
    return JsonResponse(failure(ValidationError("Sign in as a donor to answer matches")), status=401)


@require_GET
def my_matches_view(request):
    if not request.user.is_authenticated:
        return _login_failure()
    pending_only = request.GET.get("pending") in ("1", "true")
    matches = matches_for_donor(request.user, pending_only=pending_only)
    return JsonResponse({"success": True, "matches": matches, "totalFound": len(matches)})


@csrf_exempt
@require_POST
def match_response_view(request, match_id):
    if not request.user.is_authenticated:
        return _login_failure()
    try:
        payload = json_body(request)
    except ValidationError as e:
        return JsonResponse(failure(e), status=400)
    return envelope_response(respond_to_match(match_id, request.user, payload.get("response")))


@require_GET
def match_summary_view(request, request_id):
    if not request.user.is_authenticated or not request.user.is_staff:
        return JsonResponse(failure(ValidationError("Staff only")), status=403)
    result = match_summary(request_id)
    if not result["success"]:
        return JsonResponse(result, status=404)
    return JsonResponse(result)
