from __future__ import annotations

from typing import List, Optional, Sequence

from tthc_bot.catalog import PROCEDURE_COLUMNS, SourceUnavailable

HEADER = list(PROCEDURE_COLUMNS)


def make_row(procedure_id: str, name: str, **values: str) -> List[str]:
    row = {column: "" for column in PROCEDURE_COLUMNS}
    row["ma_thu_tuc"] = procedure_id
    row["thu_tuc"] = name
    row.update(values)
    return [row[column] for column in PROCEDURE_COLUMNS]


BUILDING_PERMIT = make_row(
    "1.009972",
    "Cấp giấy phép xây dựng nhà ở riêng lẻ",
    linh_vuc="Hoạt động xây dựng",
    cap_thuc_hien="Cấp huyện",
    thoi_han="15 ngày",
    phi_le_phi="75.000 đồng",
    thanh_phan_hs="Đơn đề nghị cấp giấy phép xây dựng",
)
MINING_PERMIT = make_row(
    "2.001777",
    "Cấp phép khai thác khoáng sản làm vật liệu xây dựng thông thường",
    linh_vuc="Địa chất và khoáng sản",
    thoi_han="90 ngày",
)
RETAIL_LICENSE = make_row(
    "2.000620",
    "Cấp phép bán lẻ rượu",
    linh_vuc="Lưu thông hàng hóa trong nước",
    cap_thuc_hien="Cấp huyện",
    thoi_han="10 ngày làm việc",
)
BIRTH_REGISTRATION = make_row(
    "1.001193",
    "Đăng ký khai sinh",
    linh_vuc="Hộ tịch",
    cap_thuc_hien="Cấp xã",
    thoi_han="Ngay trong ngày",
    trinh_tu="Nộp hồ sơ tại bộ phận một cửa",
)


class FakeSource:
    """In-memory catalog source that counts reads and can be switched to fail."""

    def __init__(self, rows: Sequence[Sequence[str]], header: Optional[Sequence[str]] = None) -> None:
        self.header = list(HEADER if header is None else header)
        self.rows = [list(row) for row in rows]
        self.calls = 0
        self.fail = False

    def get_rows(self):
        self.calls += 1
        if self.fail:
            raise SourceUnavailable("sheet offline")
        return list(self.header), [list(row) for row in self.rows]


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def dialogflow_request(
    query_text: str = "",
    parameters: Optional[dict] = None,
    event: Optional[dict] = None,
    contexts: Optional[list] = None,
    session: str = "projects/demo/agent/sessions/abc",
) -> dict:
    body = {
        "responseId": "resp-1",
        "session": session,
        "queryResult": {
            "queryText": query_text,
            "parameters": parameters or {},
            "outputContexts": contexts or [],
            "languageCode": "vi",
        },
        "originalDetectIntentRequest": {"source": "DIALOGFLOW_MESSENGER", "payload": {}},
    }
    if event is not None:
        body["originalDetectIntentRequest"]["payload"]["event"] = event
    return body


def session_context(procedure_id: str, state: str, session: str = "projects/demo/agent/sessions/abc") -> dict:
    return {
        "name": f"{session}/contexts/tthc-session",
        "lifespanCount": 4,
        "parameters": {"ma_thu_tuc": procedure_id, "dialog_state": state, "menu_options": []},
    }
