from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from helpers import BIRTH_REGISTRATION, BUILDING_PERMIT, MINING_PERMIT, RETAIL_LICENSE, FakeSource, dialogflow_request, session_context

from tthc_bot import app as app_module
from tthc_bot.config import load_settings
from tthc_bot.renderer import HELP_MESSAGE, SYSTEM_BUSY_MESSAGE
from tthc_bot.signals import STATE_PROCEDURE_SELECTED
from tthc_bot.webhook import build_engine, handle_webhook

SESSION_PATH = "projects/demo/agent/sessions/abc"


def rich_blocks(response: dict) -> list:
    return response["fulfillmentMessages"][0]["payload"]["richContent"][0]


class HandleWebhookTests(unittest.TestCase):
    def setUp(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = load_settings()
        self.source = FakeSource([BUILDING_PERMIT, MINING_PERMIT, RETAIL_LICENSE, BIRTH_REGISTRATION])
        self.engine = build_engine(settings, source=self.source)

    def test_free_text_to_overview_to_detail(self) -> None:
        first = handle_webhook(dialogflow_request("giấy phép xây dựng"), self.engine)

        blocks = rich_blocks(first)
        self.assertEqual(blocks[0]["title"], "**Cấp giấy phép xây dựng nhà ở riêng lẻ**")
        self.assertEqual(first["outputContexts"][0]["parameters"]["dialog_state"], STATE_PROCEDURE_SELECTED)

        chip_event = blocks[1]["options"][1]["event"]
        second = handle_webhook(
            dialogflow_request(
                "Thời hạn giải quyết",
                event={"name": chip_event["name"], "parameters": chip_event["parameters"]},
                contexts=first["outputContexts"],
            ),
            self.engine,
        )

        self.assertEqual(rich_blocks(second)[1]["text"], ["15 ngày"])
        self.assertEqual(self.source.calls, 1)

    def test_follow_up_attribute_uses_session(self) -> None:
        response = handle_webhook(
            dialogflow_request(
                "lệ phí",
                parameters={"TTHC_Info": "le_phi"},
                contexts=[session_context("1.009972", STATE_PROCEDURE_SELECTED)],
            ),
            self.engine,
        )

        self.assertEqual(rich_blocks(response)[1]["text"], ["75.000 đồng"])

    def test_unrecognized_event_keeps_selected_procedure(self) -> None:
        first = handle_webhook(
            dialogflow_request(
                event={"name": "FOO", "parameters": {}},
                contexts=[session_context("1.009972", STATE_PROCEDURE_SELECTED)],
            ),
            self.engine,
        )

        echoed = first["outputContexts"][0]["parameters"]
        self.assertEqual(first["fulfillmentText"], HELP_MESSAGE)
        self.assertEqual(echoed["ma_thu_tuc"], "1.009972")
        self.assertEqual(echoed["dialog_state"], STATE_PROCEDURE_SELECTED)

        second = handle_webhook(
            dialogflow_request("lệ phí", parameters={"TTHC_Info": "le_phi"}, contexts=first["outputContexts"]),
            self.engine,
        )

        self.assertEqual(rich_blocks(second)[1]["text"], ["75.000 đồng"])

    def test_null_event_parameters_still_select(self) -> None:
        body = dialogflow_request(event={"name": "CHON_THU_TUC", "parameters": None})
        body["queryResult"]["parameters"] = {"ma_thu_tuc": "1.001193"}
        body["queryResult"]["outputContexts"] = None

        response = handle_webhook(body, self.engine)

        self.assertEqual(rich_blocks(response)[0]["title"], "**Đăng ký khai sinh**")

    def test_failing_source_answers_busy(self) -> None:
        self.source.fail = True

        response = handle_webhook(dialogflow_request("khai sinh"), self.engine)

        self.assertEqual(response, {"fulfillmentText": SYSTEM_BUSY_MESSAGE})

    def test_non_object_payload_gets_help(self) -> None:
        response = handle_webhook(["not", "a", "request"], self.engine)

        self.assertEqual(response["fulfillmentText"], HELP_MESSAGE)

    def test_malformed_payload_gets_help(self) -> None:
        with self.assertLogs("tthc.webhook", level="WARNING"):
            response = handle_webhook({"queryResult": {"outputContexts": [{"lifespanCount": 2}]}}, self.engine)

        self.assertEqual(response["fulfillmentText"], HELP_MESSAGE)

    def test_unexpected_error_answers_busy(self) -> None:
        engine = MagicMock()
        engine.handle.side_effect = RuntimeError("boom")

        with self.assertLogs("tthc.webhook", level="ERROR"):
            response = handle_webhook(dialogflow_request("khai sinh"), engine)

        self.assertEqual(response, {"fulfillmentText": SYSTEM_BUSY_MESSAGE})


class FulfillmentEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            settings = load_settings()
        self.source = FakeSource([BUILDING_PERMIT, BIRTH_REGISTRATION])
        engine_patch = patch.object(app_module, "engine", build_engine(settings, source=self.source))
        engine_patch.start()
        self.addCleanup(engine_patch.stop)
        self.client = TestClient(app_module.app)

    def test_health_check(self) -> None:
        response = self.client.get("/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "TTHC Webhook OK")

    def test_fulfillment_round_trip(self) -> None:
        body = dialogflow_request(event={"name": "CHON_THU_TUC", "parameters": {"ma_thu_tuc": "1.001193"}})

        response = self.client.post("/fulfillment", json=body)

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(rich_blocks(payload)[0]["title"], "**Đăng ký khai sinh**")
        self.assertEqual(payload["outputContexts"][0]["name"], f"{SESSION_PATH}/contexts/tthc-session")

    def test_invalid_json_body(self) -> None:
        response = self.client.post(
            "/fulfillment",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["fulfillmentText"], HELP_MESSAGE)

    def test_source_outage_is_still_200(self) -> None:
        self.source.fail = True

        response = self.client.post("/fulfillment", json=dialogflow_request("khai sinh"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"fulfillmentText": SYSTEM_BUSY_MESSAGE})


if __name__ == "__main__":
    unittest.main()
