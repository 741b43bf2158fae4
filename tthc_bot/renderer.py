from __future__ import annotations

"""Rich-content rendering for Dialogflow Messenger.

Every reply is an ordered list of description and chips blocks. Chips carry an
event with the procedure id (and attribute key) so the next turn never depends
on re-matching the displayed label.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from .catalog import ATTRIBUTE_ALIASES, ProcedureRecord
from .dialog import Outcome, OutcomeKind
from .matcher import Candidate
from .models import ChipOption, ChipsBlock, ContentBlock, DescriptionBlock, EventInput
from .signals import (
    EVENT_GO_BACK,
    EVENT_SELECT_PROCEDURE,
    EVENT_VIEW_ATTRIBUTE,
    SESSION_CONTEXT,
    SESSION_LIFESPAN,
    SessionReference,
)

NO_DATA = "Chưa có dữ liệu."
MAX_PROCEDURE_CHIPS = 8

ATTRIBUTE_LABELS = {
    "thanh_phan_hs": "Thành phần hồ sơ",
    "thoi_han": "Thời hạn giải quyết",
    "trinh_tu": "Trình tự thực hiện",
    "phi_le_phi": "Phí, lệ phí",
    "noi_tiep_nhan": "Nơi tiếp nhận",
    "co_quan_thuc_hien": "Cơ quan thực hiện",
    "doi_tuong": "Đối tượng",
    "ket_qua": "Kết quả",
    "can_cu": "Căn cứ pháp lý",
    "dieu_kien": "Điều kiện",
    "hinh_thuc_nop": "Hình thức nộp",
    "linh_vuc": "Lĩnh vực",
    "cap_thuc_hien": "Cấp thực hiện",
    "loai_thu_tuc": "Loại thủ tục",
}
CHIP_ICONS = {
    "thanh_phan_hs": "🗂️",
    "thoi_han": "⏱️",
    "trinh_tu": "🧭",
    "phi_le_phi": "💳",
    "noi_tiep_nhan": "📍",
    "co_quan_thuc_hien": "🏢",
    "doi_tuong": "👥",
    "ket_qua": "📄",
    "can_cu": "⚖️",
    "dieu_kien": "✅",
    "hinh_thuc_nop": "🌐",
}

ASK_PROCEDURE_TITLE = "❓Bạn muốn tra cứu thủ tục nào?"
ASK_PROCEDURE_TEXT = "Chọn trong các gợi ý dưới đây:"
NO_MATCH_TITLE = "Không tìm thấy thủ tục phù hợp"
NO_MATCH_TEXT = "Bạn vui lòng diễn đạt lại tên thủ tục, hoặc chọn một gợi ý dưới đây:"
NOT_FOUND_MESSAGE = "Không tìm thấy thủ tục bạn đã chọn. Bạn vui lòng nhập lại tên thủ tục cần tra cứu."
INVALID_ATTRIBUTE_TEXT = "Thủ tục này chưa có dữ liệu cho mục bạn chọn. Bạn có thể xem các mục khác:"
HELP_MESSAGE = (
    "Mình có thể giúp bạn tra cứu thủ tục hành chính. "
    "Hãy nhập tên thủ tục, ví dụ: \"cấp giấy phép xây dựng\"."
)
SYSTEM_BUSY_MESSAGE = "Xin lỗi, hệ thống đang gặp sự cố khi đọc dữ liệu. Vui lòng thử lại."
BACK_LABEL = "⬅️ Quay lại"


@dataclass
class Reply:
    """Structured reply: content blocks, optional plain text and the session echo."""
    blocks: List[ContentBlock] = field(default_factory=list)
    fulfillment_text: Optional[str] = None
    session: Optional[SessionReference] = None


def attribute_label(key: str) -> str:
    return ATTRIBUTE_LABELS.get(key) or key.replace("_", " ").upper()


def procedure_chips(records: Sequence[ProcedureRecord], language_code: str = "vi") -> ChipsBlock:
    """Purpose: Build a chip list that selects procedures by id.
    Inputs/Outputs: Input is a record sequence; output is a ChipsBlock of at most
        MAX_PROCEDURE_CHIPS options.
    Side Effects / State: None.
    Dependencies: EVENT_SELECT_PROCEDURE event naming.
    Failure Modes: An empty sequence yields an empty chips block.
    If Removed: Candidate lists and suggestions cannot be clicked.
    Testing Notes: Each option must carry ma_thu_tuc in its event parameters.
    """
    options = [
        ChipOption(
            text=record.name,
            event=EventInput(
                name=EVENT_SELECT_PROCEDURE,
                language_code=language_code,
                parameters={"ma_thu_tuc": record.procedure_id},
            ),
        )
        for record in list(records)[:MAX_PROCEDURE_CHIPS]
    ]
    return ChipsBlock(options=options)


def attribute_chips(record: ProcedureRecord, language_code: str = "vi", with_back: bool = False) -> ChipsBlock:
    """Purpose: Build the attribute menu for one procedure.
    Inputs/Outputs: Input is the record; output is a ChipsBlock listing only the
        attributes that have data, optionally followed by a back chip.
    Side Effects / State: None.
    Dependencies: ProcedureRecord.menu_attributes and the label tables.
    Failure Modes: A record without detail data yields only the back chip (if any).
    If Removed: Users cannot drill into durations, fees or documents.
    Testing Notes: Empty attributes must not appear as options.
    """
    options = []
    for key in record.menu_attributes():
        icon = CHIP_ICONS.get(key, "")
        options.append(
            ChipOption(
                text=f"{icon} {attribute_label(key)}".strip(),
                event=EventInput(
                    name=EVENT_VIEW_ATTRIBUTE,
                    language_code=language_code,
                    parameters={"ma_thu_tuc": record.procedure_id, "info_key": key},
                ),
            )
        )
    if with_back:
        options.append(
            ChipOption(
                text=BACK_LABEL,
                event=EventInput(
                    name=EVENT_GO_BACK,
                    language_code=language_code,
                    parameters={"ma_thu_tuc": record.procedure_id},
                ),
            )
        )
    return ChipsBlock(options=options)


def _title(record: ProcedureRecord) -> str:
    return f"**{record.name}**"


def render_overview(record: ProcedureRecord, language_code: str = "vi") -> Reply:
    summary = DescriptionBlock(
        title=_title(record),
        text=[
            f"Lĩnh vực: {record.value('linh_vuc') or NO_DATA}",
            f"Cấp thực hiện: {record.value('cap_thuc_hien') or NO_DATA}",
        ],
    )
    return Reply(blocks=[summary, attribute_chips(record, language_code)])


def render_attribute_detail(record: ProcedureRecord, attribute_key: str, language_code: str = "vi") -> Reply:
    """Purpose: Render one attribute of a procedure with the menu below it.
    Inputs/Outputs: Inputs are the record and a column key; output is a Reply with the
        procedure header, the detail block and the attribute chips plus back.
    Side Effects / State: None.
    Dependencies: attribute_label, attribute_chips.
    Failure Modes: Missing values render NO_DATA instead of an empty block.
    If Removed: Attribute selections have nothing to show.
    Testing Notes: thoi_han = "15 ngày" must render text == ["15 ngày"].
    """
    key = ATTRIBUTE_ALIASES.get(attribute_key, attribute_key)
    detail = DescriptionBlock(
        title=f"**{attribute_label(key)}**",
        text=[record.value(key) or NO_DATA],
    )
    return Reply(
        blocks=[
            DescriptionBlock(title=_title(record)),
            detail,
            attribute_chips(record, language_code, with_back=True),
        ]
    )


def render_invalid_attribute(record: ProcedureRecord, language_code: str = "vi") -> Reply:
    notice = DescriptionBlock(title=_title(record), text=[INVALID_ATTRIBUTE_TEXT])
    return Reply(blocks=[notice, attribute_chips(record, language_code)])


def render_candidate_list(candidates: Sequence[Candidate], language_code: str = "vi") -> Reply:
    header = DescriptionBlock(title=ASK_PROCEDURE_TITLE, text=[ASK_PROCEDURE_TEXT])
    records = [candidate.record for candidate in candidates]
    return Reply(blocks=[header, procedure_chips(records, language_code)])


def render_no_match(suggestions: Sequence[ProcedureRecord], language_code: str = "vi") -> Reply:
    blocks: List[ContentBlock] = [DescriptionBlock(title=NO_MATCH_TITLE, text=[NO_MATCH_TEXT])]
    if suggestions:
        blocks.append(procedure_chips(suggestions, language_code))
    return Reply(blocks=blocks)


def render_not_found() -> Reply:
    return Reply(blocks=[DescriptionBlock(title=NOT_FOUND_MESSAGE)], fulfillment_text=NOT_FOUND_MESSAGE)


def render_fallback(message: str = HELP_MESSAGE) -> Reply:
    return Reply(blocks=[DescriptionBlock(text=[message])], fulfillment_text=message)


def render_outcome(outcome: Outcome, language_code: str = "vi") -> Reply:
    """Purpose: Turn a dialog Outcome into a Reply with the session echo attached.
    Inputs/Outputs: Input is an Outcome; output is a Reply.
    Side Effects / State: None.
    Dependencies: The render_* functions of this module.
    Failure Modes: SOURCE_ERROR renders a plain message without blocks.
    If Removed: The webhook cannot produce platform payloads.
    Testing Notes: Each OutcomeKind maps to exactly one renderer.
    """
    kind = outcome.kind
    if kind is OutcomeKind.OVERVIEW and outcome.record is not None:
        reply = render_overview(outcome.record, language_code)
    elif kind is OutcomeKind.ATTRIBUTE_DETAIL and outcome.record is not None:
        reply = render_attribute_detail(outcome.record, outcome.attribute_key or "", language_code)
    elif kind is OutcomeKind.INVALID_ATTRIBUTE and outcome.record is not None:
        reply = render_invalid_attribute(outcome.record, language_code)
    elif kind is OutcomeKind.CANDIDATE_LIST:
        reply = render_candidate_list(outcome.candidates, language_code)
    elif kind is OutcomeKind.NO_MATCH:
        reply = render_no_match(outcome.suggestions, language_code)
    elif kind is OutcomeKind.NOT_FOUND:
        reply = render_not_found()
    elif kind is OutcomeKind.SOURCE_ERROR:
        return Reply(fulfillment_text=SYSTEM_BUSY_MESSAGE)
    else:
        reply = render_fallback()
    session = outcome.session
    if kind in (OutcomeKind.CANDIDATE_LIST, OutcomeKind.NO_MATCH):
        # Only the procedures offered as chips are echoed back.
        session = replace(session, options=session.options[:MAX_PROCEDURE_CHIPS])
    reply.session = session
    return reply


def to_webhook_response(reply: Reply, session_path: str = "") -> Dict[str, Any]:
    """Purpose: Serialize a Reply into the Dialogflow ES webhook response schema.
    Inputs/Outputs: Inputs are the Reply and the request session path; output is a
        JSON-ready dict.
    Side Effects / State: None.
    Dependencies: pydantic model_dump with camelCase aliases.
    Failure Modes: Without a session path no output context is emitted.
    If Removed: Nothing is returned to the platform.
    Testing Notes: richContent must be a list holding one list of blocks.
    """
    response: Dict[str, Any] = {}
    if reply.fulfillment_text:
        response["fulfillmentText"] = reply.fulfillment_text
    if reply.blocks:
        rich_content = [[block.model_dump(by_alias=True, exclude_none=True) for block in reply.blocks]]
        response["fulfillmentMessages"] = [{"payload": {"richContent": rich_content}}]
    if reply.session is not None and session_path:
        response["outputContexts"] = [
            {
                "name": f"{session_path}/contexts/{SESSION_CONTEXT}",
                "lifespanCount": SESSION_LIFESPAN,
                "parameters": reply.session.to_parameters(),
            }
        ]
    return response
