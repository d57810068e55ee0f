import pytest

from fakes import FakeLLM
from sales_intel.errors import ConfigMissingError, ParseFailureError
from sales_intel.llm import chat_json, repair_json, strip_code_fence


def test_strip_code_fence():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('  {"a": 1} ') == '{"a": 1}'


def test_chat_json_parses_fenced_reply():
    llm = FakeLLM(['```json\n{"subject": "Hi"}\n```'])
    assert chat_json([{"role": "user", "content": "x"}], client=llm) == {"subject": "Hi"}
    assert llm.calls[0]["response_format"] == {"type": "json_object"}


def test_chat_json_rejects_non_object():
    with pytest.raises(ParseFailureError):
        chat_json([], client=FakeLLM(["[1, 2]"]))


def test_chat_json_repair_on_truncated_reply():
    llm = FakeLLM(['{"executive_summary": "Mulch refresh", "services": [],'])
    out = chat_json([], client=llm, repair=True)
    assert out == {"executive_summary": "Mulch refresh", "services": []}


def test_repair_json_closes_unterminated_string():
    assert repair_json('{"summary": "cut off') == {"summary": "cut off"}


def test_missing_key_is_config_error():
    with pytest.raises(ConfigMissingError):
        chat_json([], api_key=None)
