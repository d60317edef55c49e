import json
from unittest import mock

import requests
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase, TestCase

from accounts.models import CustomUser, DonorProfile
from blood.models import EmergencyRequest
from core.errors import ModelError
from .consumers import AssistantChatConsumer
from .dispatcher import APOLOGY, FEEDBACK_ALL, MAX_MESSAGE_LENGTH, ConversationDispatcher
from .functions import FUNCTION_DECLARATIONS, FunctionName, Toolbox
from .gemini import GENERATION_CONFIG, GeminiClient, parse_reply
from .offline import MISSING_EMERGENCY_TEXT, OfflineModelClient


def call_reply(*calls):
    parts = [{"functionCall": {"name": n, "args": a}} for n, a in calls]
    return {
        "text": "",
        "functionCalls": [{"name": n, "args": a} for n, a in calls],
        "content": {"role": "model", "parts": parts},
    }


def text_reply(text):
    return {"text": text, "functionCalls": [], "content": {"role": "model", "parts": [{"text": text}]}}


class ScriptedModel:
    """Returns queued replies in order and records what it was sent."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.seen = []

    def generate(self, contents, tools=None):
        self.seen.append(contents)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class NoStore:
    def __getattr__(self, name):
        raise AssertionError(f"store.{name} should not be called")


class FunctionDeclarationTests(SimpleTestCase):

    def test_declarations_match_the_enum(self):
        self.assertEqual({d["name"] for d in FUNCTION_DECLARATIONS}, {f.value for f in FunctionName})

    def test_unknown_function(self):
        result = Toolbox(store=NoStore()).execute("launchRocket", {})
        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "unknown_function")

    def test_bad_arguments_become_failure(self):
        result = Toolbox(store=NoStore()).execute("getBloodCompatibility", {"bloodType": "X", "checkType": "canDonateTo"})
        self.assertEqual(result["error"], "invalid_blood_type")


class OfflineRoutingTests(SimpleTestCase):

    def setUp(self):
        self.engine = OfflineModelClient()

    def first_call(self, text):
        calls = self.engine.route(text)["functionCalls"]
        self.assertEqual(len(calls), 1)
        return calls[0]

    def test_receive_question(self):
        call = self.first_call("What blood types can O- receive from?")
        self.assertEqual(call["name"], "getBloodCompatibility")
        self.assertEqual(call["args"], {"bloodType": "O-", "checkType": "canReceiveFrom"})

    def test_donor_search(self):
        call = self.first_call("I urgently need AB positive blood in Andheri, Mumbai")
        self.assertEqual(call["name"], "findCompatibleDonors")
        self.assertEqual(call["args"]["requiredBloodType"], "AB+")
        self.assertEqual(call["args"]["hospitalLocation"], "Mumbai")
        self.assertEqual(call["args"]["urgency"], "critical")

    def test_emergency(self):
        call = self.first_call("Emergency: 2 units O- at City General, contact +91 12345 67890")
        self.assertEqual(call["name"], "registerEmergencyRequest")
        self.assertEqual(call["args"], {
            "bloodType": "O-",
            "hospitalName": "City General",
            "contactInfo": "+911234567890",
            "urgency": "critical",
            "unitsNeeded": 2,
        })

    def test_emergency_missing_details_asks(self):
        reply = self.engine.route("Emergency! we need blood")
        self.assertEqual(reply["functionCalls"], [])
        self.assertEqual(reply["text"], MISSING_EMERGENCY_TEXT)

    def test_drives(self):
        call = self.first_call("Any blood drives in Pune from 2026-11-01 to 2026-11-30?")
        self.assertEqual(call["args"], {"location": "Pune", "startDate": "2026-11-01", "endDate": "2026-11-30"})

    def test_small_talk(self):
        reply = self.engine.route("hello")
        self.assertEqual(reply["functionCalls"], [])
        self.assertTrue(reply["text"])


class DispatcherTests(SimpleTestCase):

    def test_compatibility_question_end_to_end(self):
        dispatcher = ConversationDispatcher(OfflineModelClient(), Toolbox(store=NoStore()))
        result = dispatcher.send_chat_turn("What blood types can O- receive from?")

        self.assertTrue(result["success"])
        self.assertEqual(len(result["functionCalls"]), 1)
        self.assertEqual(result["functionCalls"][0]["response"]["compatibleTypes"], ["O-"])
        self.assertIn("O-", result["reply"])
        self.assertEqual([t["role"] for t in result["history"]], ["user", "assistant"])

    def test_plain_reply_makes_one_model_call(self):
        model = ScriptedModel(text_reply("Hi there"))
        result = ConversationDispatcher(model, Toolbox(store=NoStore())).send_chat_turn("hello")
        self.assertEqual(result["reply"], "Hi there")
        self.assertEqual(result["functionCalls"], [])
        self.assertEqual(len(model.seen), 1)

    def test_history_is_sent_and_not_mutated(self):
        history = [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "system", "content": "ignored"},
        ]
        model = ScriptedModel(text_reply("ok"))
        result = ConversationDispatcher(model, Toolbox(store=NoStore())).send_chat_turn("next", history)

        self.assertEqual(len(history), 3)
        self.assertEqual([c["role"] for c in model.seen[0]], ["user", "model", "user"])
        self.assertEqual(len(result["history"]), 4)

    def test_only_first_result_fed_back_by_default(self):
        model = ScriptedModel(
            call_reply(
                ("getBloodCompatibility", {"bloodType": "A+", "checkType": "canDonateTo"}),
                ("getBloodCompatibility", {"bloodType": "B+", "checkType": "canDonateTo"}),
            ),
            text_reply("done"),
        )
        result = ConversationDispatcher(model, Toolbox(store=NoStore())).send_chat_turn("compare")

        self.assertEqual(len(result["functionCalls"]), 2)
        fed = model.seen[1][-1]["parts"]
        self.assertEqual(len(fed), 1)
        self.assertEqual(fed[0]["functionResponse"]["response"]["bloodType"], "A+")
        self.assertEqual(model.seen[1][-2]["role"], "model")

    def test_all_results_fed_back_when_configured(self):
        model = ScriptedModel(
            call_reply(
                ("getBloodCompatibility", {"bloodType": "A+", "checkType": "canDonateTo"}),
                ("getBloodCompatibility", {"bloodType": "B+", "checkType": "canDonateTo"}),
            ),
            text_reply("done"),
        )
        ConversationDispatcher(model, Toolbox(store=NoStore()), feedback=FEEDBACK_ALL).send_chat_turn("compare")
        self.assertEqual(len(model.seen[1][-1]["parts"]), 2)

    def test_unknown_function_is_reported_to_the_model(self):
        model = ScriptedModel(call_reply(("launchRocket", {})), text_reply("I can't do that."))
        result = ConversationDispatcher(model, Toolbox(store=NoStore())).send_chat_turn("launch")

        self.assertTrue(result["success"])
        self.assertEqual(result["functionCalls"][0]["response"]["error"], "unknown_function")
        self.assertEqual(result["reply"], "I can't do that.")

    def test_model_failure_gives_apology(self):
        history = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
        model = ScriptedModel(ModelError("down"))
        result = ConversationDispatcher(model, Toolbox(store=NoStore())).send_chat_turn("help", history)

        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "model_error")
        self.assertTrue(result["reply"].startswith(APOLOGY))
        self.assertIn("fallback", result)
        self.assertEqual([t["content"] for t in result["history"][:3]], ["hi", "hello", "help"])
        self.assertEqual(len(history), 2)

    def test_second_model_call_failure_keeps_function_calls(self):
        model = ScriptedModel(
            call_reply(("getBloodCompatibility", {"bloodType": "O+", "checkType": "canDonateTo"})),
            ModelError("timeout"),
        )
        result = ConversationDispatcher(model, Toolbox(store=NoStore())).send_chat_turn("O+?")
        self.assertFalse(result["success"])
        self.assertEqual(len(result["functionCalls"]), 1)

    def test_blank_message(self):
        result = ConversationDispatcher(ScriptedModel(), Toolbox(store=NoStore())).send_chat_turn("   ")
        self.assertEqual(result["error"], "validation_error")
        self.assertEqual(result["history"], [])

    def test_malformed_history_is_dropped_not_fatal(self):
        history = [
            {"role": "user", "content": "hi", "functionCalls": 1},
            {"role": "assistant", "content": 7},
            "noise",
        ]
        model = ScriptedModel(text_reply("ok"))
        result = ConversationDispatcher(model, Toolbox(store=NoStore())).send_chat_turn("next", history)

        self.assertTrue(result["success"])
        self.assertEqual(result["history"][0], {"role": "user", "content": "hi", "functionCalls": []})
        self.assertEqual(len(result["history"]), 3)

        result = ConversationDispatcher(ScriptedModel(text_reply("ok")), Toolbox(store=NoStore())).send_chat_turn("next", 5)
        self.assertEqual(len(result["history"]), 2)

    def test_overlong_message_is_rejected(self):
        model = ScriptedModel()
        history = [{"role": "user", "content": "hi"}]
        result = ConversationDispatcher(model, Toolbox(store=NoStore())).send_chat_turn("x" * (MAX_MESSAGE_LENGTH + 1), history)

        self.assertEqual(result["error"], "validation_error")
        self.assertEqual(result["details"]["maxLength"], MAX_MESSAGE_LENGTH)
        self.assertEqual(len(result["history"]), 1)
        self.assertEqual(model.seen, [])

    def test_bad_feedback_mode(self):
        with self.assertRaises(ValueError):
            ConversationDispatcher(ScriptedModel(), feedback="some")


class EmergencyConversationTests(TestCase):

    def test_emergency_registered_through_chat(self):
        dispatcher = ConversationDispatcher(OfflineModelClient(), Toolbox(notifier=lambda req: None))
        result = dispatcher.send_chat_turn("Emergency: O- at City General, contact +911234567890")

        response = result["functionCalls"][0]["response"]
        self.assertTrue(response["success"])
        self.assertIn(response["requestId"], result["reply"])
        self.assertTrue(EmergencyRequest.objects.filter(request_id=response["requestId"]).exists())

    def test_donor_search_through_chat(self):
        user = CustomUser.objects.create_user(username="d1", password="x", first_name="Asha", phone_number="+919000000001")
        DonorProfile.objects.create(user=user, blood_group="O-", city="Mumbai")

        dispatcher = ConversationDispatcher(OfflineModelClient(), Toolbox())
        result = dispatcher.send_chat_turn("I need O+ blood in Mumbai")

        self.assertIn("1 compatible donor", result["reply"])
        self.assertNotIn("Asha", json.dumps(result))
        self.assertNotIn("+919000000001", json.dumps(result))


def fake_response(status, data):
    resp = mock.Mock(status_code=status, text=json.dumps(data))
    resp.json.return_value = data
    return resp


class GeminiClientTests(SimpleTestCase):

    def client_with(self, response=None, error=None):
        session = mock.Mock()
        if error:
            session.post.side_effect = error
        else:
            session.post.return_value = response
        return GeminiClient("k3y", model="gemini-test", session=session), session

    def test_function_call_reply(self):
        data = {"candidates": [{"content": {"role": "model", "parts": [
            {"functionCall": {"name": "getBloodCompatibility", "args": {"bloodType": "O-", "checkType": "canReceiveFrom"}}},
        ]}}]}
        client, session = self.client_with(fake_response(200, data))

        reply = client.generate([{"role": "user", "parts": [{"text": "hi"}]}], tools=FUNCTION_DECLARATIONS)

        self.assertEqual(reply["functionCalls"][0]["name"], "getBloodCompatibility")
        self.assertEqual(reply["content"]["role"], "model")

        args, kwargs = session.post.call_args
        self.assertTrue(args[0].endswith("/models/gemini-test:generateContent"))
        self.assertEqual(kwargs["params"], {"key": "k3y"})
        self.assertEqual(kwargs["json"]["generationConfig"], GENERATION_CONFIG)
        self.assertEqual(len(kwargs["json"]["tools"][0]["functionDeclarations"]), 4)

    def test_text_reply(self):
        reply = parse_reply({"candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "there"}]}}]})
        self.assertEqual(reply["text"], "Hello there")
        self.assertEqual(reply["functionCalls"], [])

    def test_http_error(self):
        client, _ = self.client_with(fake_response(429, {"error": {"message": "quota"}}))
        with self.assertRaises(ModelError):
            client.generate([])

    def test_network_error(self):
        client, _ = self.client_with(error=requests.ConnectionError("refused"))
        with self.assertRaises(ModelError):
            client.generate([])

    def test_blocked_prompt(self):
        with self.assertRaises(ModelError):
            parse_reply({"promptFeedback": {"blockReason": "SAFETY"}})

    def test_missing_key(self):
        client = GeminiClient("", session=mock.Mock())
        with self.assertRaises(ModelError):
            client.generate([])
        client.session.post.assert_not_called()


class AssistantApiTests(TestCase):

    def post_chat(self, body):
        return self.client.post("/api/chat", data=json.dumps(body), content_type="application/json")

    def test_chat(self):
        resp = self.post_chat({"message": "Who can AB+ receive from?", "history": []})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertTrue(data["success"])
        self.assertEqual(len(data["functionCalls"][0]["response"]["compatibleTypes"]), 8)

    def test_chat_requires_message(self):
        self.assertEqual(self.post_chat({"message": ""}).status_code, 400)
        self.assertEqual(self.post_chat({"message": "hi", "history": "x"}).status_code, 400)

    def test_chat_with_odd_history_and_long_message(self):
        resp = self.post_chat({"message": "hello", "history": [{"role": "user", "content": "hi", "functionCalls": 1}]})
        self.assertEqual(resp.status_code, 200)

        resp = self.post_chat({"message": "a" * 4001})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["details"]["maxLength"], 4000)

    def test_chat_model_failure_is_still_200(self):
        dispatcher = ConversationDispatcher(ScriptedModel(ModelError("down")), Toolbox())
        with mock.patch("assistant.views.build_dispatcher", return_value=dispatcher):
            resp = self.post_chat({"message": "hi"})
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.json()["success"])

    def test_health_and_db(self):
        self.assertEqual(self.client.get("/api/health").json()["status"], "healthy")
        self.assertTrue(self.client.get("/api/test-db").json()["success"])


class ChatConsumerTests(TestCase):

    async def open_chat(self):
        communicator = WebsocketCommunicator(AssistantChatConsumer.as_asgi(), "/ws/assistant/chat/")
        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        return communicator

    async def say(self, communicator, frame):
        await communicator.send_json_to(frame)
        return await communicator.receive_json_from(timeout=5)

    async def test_history_grows_and_resets(self):
        communicator = await self.open_chat()

        first = await self.say(communicator, {"type": "SEND", "message": "What blood types can O- receive from?"})
        self.assertEqual(first["type"], "REPLY")
        self.assertTrue(first["success"])
        self.assertEqual(first["turns"], 2)
        self.assertEqual(first["functionCalls"][0]["response"]["compatibleTypes"], ["O-"])

        second = await self.say(communicator, {"type": "send", "message": "Who can AB+ receive from?"})
        self.assertEqual(second["turns"], 4)

        self.assertEqual(await self.say(communicator, {"type": "RESET"}), {"type": "RESET", "turns": 0})

        third = await self.say(communicator, {"type": "SEND", "message": "Who can AB+ receive from?"})
        self.assertEqual(third["turns"], 2)
        await communicator.disconnect()

    async def test_bad_frames_get_errors_and_socket_stays_open(self):
        communicator = await self.open_chat()

        for frame in ([1, 2], {"type": "SEND", "message": 42}, {"type": "SEND"}, {"type": 3}, {"type": "PING"}):
            reply = await self.say(communicator, frame)
            self.assertEqual(reply["type"], "ERROR", frame)
            self.assertEqual(reply["error"], "validation_error")

        reply = await self.say(communicator, {"type": "SEND", "message": "Who can AB+ receive from?"})
        self.assertEqual(reply["turns"], 2)
        await communicator.disconnect()
