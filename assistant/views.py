from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from blood.store import DonorStore
from blood.views import json_body
from core.errors import StoreError, ValidationError, failure
from .backends import build_dispatcher


@csrf_exempt
@require_POST
def chat_view(request):
    try:
        payload = json_body(request)
    except ValidationError as e:
        return JsonResponse(failure(e), status=400)

    message = payload.get("message")
    if not isinstance(message, str) or not message.strip():
        return JsonResponse(failure(ValidationError("Message is required")), status=400)

    history = payload.get("history") or []
    if not isinstance(history, list):
        return JsonResponse(failure(ValidationError("history must be a list")), status=400)

    result = build_dispatcher().send_chat_turn(message, history)
    if result.get("error") == ValidationError.code:
        return JsonResponse(result, status=400)
    # a degraded turn is still a usable reply for the UI
    return JsonResponse(result, status=200)


@require_GET
def health_view(request):
    return JsonResponse({"status": "healthy", "timestamp": timezone.now().isoformat()})


@require_GET
def test_db_view(request):
    try:
        DonorStore().ping()
    except StoreError as e:
        return JsonResponse(failure(e), status=503)
    return JsonResponse({"success": True, "message": "Database connection successful"})
