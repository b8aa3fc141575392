import json
import unittest

from fastapi.testclient import TestClient

from config import Settings
from core.exceptions import ConfigurationError
from main import create_app
from tests.stubs import StubLLMService, parse_sse

ENDPOINT = "/api/together-ai"


class ChatApiTestCase(unittest.TestCase):
    def build_client(self, service, **settings_overrides):
        values = {"together_api_key": "test-key", "_env_file": None}
        values.update(settings_overrides)
        self.service = service
        self.app = create_app(Settings(**values), llm_service=service)
        self.store = self.app.state.session_store
        self.locks = self.app.state.lock_set
        self.client = TestClient(self.app)
        return self.client

    def history(self, session_id):
        return [(t.role, t.content) for t in self.store.get_history(session_id)]


class TestStreamingRelay(ChatApiTestCase):
    def test_end_to_end_stream_and_history(self):
        client = self.build_client(StubLLMService(["El", " saldo", " es cero."]))

        response = client.post(ENDPOINT, json={"message": "Cuál es el saldo", "sessionId": "s1"})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/event-stream"))
        self.assertEqual(response.headers["cache-control"], "no-cache")
        frames = parse_sse(response.text)
        self.assertEqual([f["event"] for f in frames], ["message"] * 4)
        self.assertEqual(
            [json.loads(f["data"]) for f in frames[:3]],
            [{"response": "El"}, {"response": " saldo"}, {"response": " es cero."}],
        )
        self.assertEqual(frames[3]["data"], "[DONE]")
        self.assertTrue(response.text.endswith("data: [DONE]\n\n"))
        self.assertEqual(self.history("s1"), [("user", "Cuál es el saldo"), ("assistant", "El saldo es cero.")])
        self.assertFalse(self.locks.is_locked("s1"))

    def test_message_is_sanitized_before_dispatch_and_storage(self):
        client = self.build_client(StubLLMService(["Hola."]))

        client.post(ENDPOINT, json={"message": "Usuario: hola @bob.smith", "sessionId": "s1"})

        self.assertEqual(self.service.requests[0][-1], {"role": "user", "content": "hola"})
        self.assertEqual(self.history("s1")[0], ("user", "hola"))

    def test_prompt_carries_previous_turns(self):
        client = self.build_client(StubLLMService(["Bien."]))

        client.post(ENDPOINT, json={"message": "primero", "sessionId": "s1"})
        client.post(ENDPOINT, json={"message": "segundo", "sessionId": "s1"})

        second_prompt = self.service.requests[1]
        self.assertEqual(second_prompt[0]["role"], "system")
        self.assertEqual(
            [(m["role"], m["content"]) for m in second_prompt[1:]],
            [("user", "primero"), ("assistant", "Bien."), ("user", "segundo")],
        )
        self.assertEqual(len(self.history("s1")), 4)

    def test_missing_session_id_uses_default_session(self):
        client = self.build_client(StubLLMService(["ok"]))

        client.post(ENDPOINT, json={"message": "hola"})

        self.assertEqual(self.history("default"), [("user", "hola"), ("assistant", "ok")])

    def test_lock_is_held_while_streaming(self):
        seen = []
        client = self.build_client(StubLLMService(
            ["uno", "dos"], on_delta=lambda delta: seen.append(self.locks.is_locked("s1"))))

        client.post(ENDPOINT, json={"message": "hola", "sessionId": "s1"})

        self.assertEqual(seen, [True, True])
        self.assertFalse(self.locks.is_locked("s1"))

    def test_cors_allows_any_origin(self):
        client = self.build_client(StubLLMService())

        response = client.options(ENDPOINT, headers={
            "Origin": "https://banco.example",
            "Access-Control-Request-Method": "POST",
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["access-control-allow-origin"], "*")


class TestRejections(ChatApiTestCase):
    def test_busy_session_is_rejected_then_succeeds_after_release(self):
        client = self.build_client(StubLLMService(["ok"]))
        self.locks.lock("s1")

        busy = client.post(ENDPOINT, json={"message": "hola", "sessionId": "s1"})
        self.assertEqual(busy.status_code, 429)
        self.assertIn("error", busy.json())
        self.assertTrue(self.locks.is_locked("s1"))
        self.assertEqual(self.service.requests, [])

        other = client.post(ENDPOINT, json={"message": "hola", "sessionId": "s2"})
        self.assertEqual(other.status_code, 200)

        self.locks.unlock("s1")
        retry = client.post(ENDPOINT, json={"message": "hola", "sessionId": "s1"})
        self.assertEqual(retry.status_code, 200)
        self.assertEqual(len(self.history("s1")), 2)

    def test_missing_message_is_bad_request_and_releases_lock(self):
        client = self.build_client(StubLLMService(["ok"]))

        for body in ({"sessionId": "s1"}, {"message": "", "sessionId": "s1"}):
            response = client.post(ENDPOINT, json=body)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {"error": "No se proporcionó ningún mensaje."})
            self.assertFalse(self.locks.is_locked("s1"))

        follow_up = client.post(ENDPOINT, json={"message": "hola", "sessionId": "s1"})
        self.assertEqual(follow_up.status_code, 200)
        self.assertEqual(self.service.requests[0][-1]["content"], "hola")

    def test_bodiless_request_is_bad_request(self):
        client = self.build_client(StubLLMService(["ok"]))

        response = client.post(ENDPOINT)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "No se proporcionó ningún mensaje."})
        self.assertEqual(self.service.requests, [])
        self.assertEqual(len(self.locks), 0)

    def test_non_string_fields_are_bad_request(self):
        client = self.build_client(StubLLMService(["ok"]))

        for body in ({"message": 5}, {"message": "hola", "sessionId": 7}):
            response = client.post(ENDPOINT, json=body)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(list(response.json()), ["error"])
        self.assertEqual(self.service.requests, [])
        self.assertEqual(len(self.locks), 0)

    def test_invalid_json_is_bad_request(self):
        client = self.build_client(StubLLMService(["ok"]))

        response = client.post(ENDPOINT, content=b"{no es json", headers={"content-type": "application/json"})

        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    def test_upstream_failure_before_stream_is_json_500(self):
        client = self.build_client(StubLLMService(fail_on_open=RuntimeError("Together AI no disponible")))

        response = client.post(ENDPOINT, json={"message": "hola", "sessionId": "s1"})

        self.assertEqual(response.status_code, 500)
        self.assertTrue(response.headers["content-type"].startswith("application/json"))
        self.assertEqual(response.json(), {"error": "Together AI no disponible"})
        self.assertFalse(self.locks.is_locked("s1"))
        self.assertEqual(self.history("s1"), [])

    def test_upstream_failure_mid_stream_sends_error_event(self):
        client = self.build_client(StubLLMService(["El", " saldo"], fail_after=1))

        response = client.post(ENDPOINT, json={"message": "hola", "sessionId": "s1"})

        self.assertEqual(response.status_code, 200)
        frames = parse_sse(response.text)
        self.assertEqual(json.loads(frames[0]["data"]), {"response": "El"})
        self.assertEqual(frames[-1]["event"], "error")
        self.assertEqual(json.loads(frames[-1]["data"]), {"error": "stream broke"})
        self.assertNotIn("[DONE]", response.text)
        self.assertFalse(self.locks.is_locked("s1"))
        self.assertEqual(self.history("s1"), [])


class TestHistoryEndpoints(ChatApiTestCase):
    def test_get_history(self):
        client = self.build_client(StubLLMService(["ok"]))
        client.post(ENDPOINT, json={"message": "hola", "sessionId": "s1"})

        response = client.get("/api/sessions/s1/history")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            "sessionId": "s1",
            "history": [{"role": "user", "content": "hola"}, {"role": "assistant", "content": "ok"}],
        })

    def test_history_is_capped(self):
        client = self.build_client(StubLLMService(["ok"]), max_history_messages=2)
        client.post(ENDPOINT, json={"message": "uno", "sessionId": "s1"})
        client.post(ENDPOINT, json={"message": "dos", "sessionId": "s1"})

        self.assertEqual(self.history("s1"), [("user", "dos"), ("assistant", "ok")])

    def test_reading_unknown_session_does_not_create_it(self):
        client = self.build_client(StubLLMService())

        response = client.get("/api/sessions/desconocida/history")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"sessionId": "desconocida", "history": []})
        self.assertNotIn("desconocida", self.store)
        self.assertEqual(len(self.store), 0)

    def test_clear_history(self):
        client = self.build_client(StubLLMService(["ok"]))
        client.post(ENDPOINT, json={"message": "hola", "sessionId": "s1"})

        response = client.delete("/api/sessions/s1/history")

        self.assertEqual(response.status_code, 204)
        self.assertNotIn("s1", self.store)

    def test_clear_history_refused_while_in_flight(self):
        client = self.build_client(StubLLMService(["ok"]))
        client.post(ENDPOINT, json={"message": "hola", "sessionId": "s1"})
        self.locks.lock("s1")

        response = client.delete("/api/sessions/s1/history")

        self.assertEqual(response.status_code, 409)
        self.assertIn("error", response.json())
        self.assertEqual(len(self.history("s1")), 2)

    def test_health_check(self):
        client = self.build_client(StubLLMService())
        self.assertEqual(client.get("/").json()["status"], "online")


class TestStartup(unittest.TestCase):
    def test_missing_api_key_is_fatal_at_startup(self):
        app = create_app(Settings(together_api_key=None, _env_file=None))
        with self.assertRaises(ConfigurationError):
            with TestClient(app):
                pass

    def test_lifespan_closes_injected_service(self):
        service = StubLLMService()
        with TestClient(create_app(Settings(together_api_key="test-key", _env_file=None), llm_service=service)):
            pass
        self.assertTrue(service.closed)


if __name__ == '__main__':
    unittest.main()
