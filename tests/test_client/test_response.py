"""Tests for the structured payload helpers."""

from __future__ import annotations

import json
from typing import Optional

import httpx
import pytest
from pydantic import BaseModel, Field

from blobcache.client.response import decode_model, encode_payload, extract_response_data


class Size(BaseModel):
    width: int
    height: int


class Asset(BaseModel):
    asset_id: str = Field(alias="assetId")
    name: str
    size: Optional[Size] = None
    variants: list[Size] = []


@pytest.fixture(autouse=True)
def _quiet(quiet_output):
    yield


class TestExtractResponseData:
    def test_json(self) -> None:
        assert extract_response_data(httpx.Response(200, json={"a": 1})) == {"a": 1}

    def test_text(self) -> None:
        assert extract_response_data(httpx.Response(200, text="plain")) == "plain"

    def test_empty(self) -> None:
        assert extract_response_data(httpx.Response(204)) is None


class TestDecodeModel:
    def test_exact_names(self) -> None:
        asset = decode_model('{"assetId": "a1", "name": "logo"}', Asset)
        assert asset.asset_id == "a1"
        assert asset.name == "logo"

    def test_names_matched_ignoring_case(self) -> None:
        text = json.dumps({"ASSETID": "a1", "Name": "logo", "SIZE": {"Width": 2, "HEIGHT": 3}})
        asset = decode_model(text, Asset)
        assert asset.asset_id == "a1"
        assert asset.size == Size(width=2, height=3)

    def test_field_name_also_accepted(self) -> None:
        asset = decode_model('{"Asset_Id": "a1", "name": "logo"}', Asset)
        assert asset.asset_id == "a1"

    def test_nested_lists(self) -> None:
        text = json.dumps({"assetid": "a", "name": "n", "Variants": [{"WIDTH": 1, "height": 1}]})
        assert decode_model(text, Asset).variants == [Size(width=1, height=1)]

    def test_unknown_keys_ignored(self) -> None:
        asset = decode_model('{"assetId": "a1", "name": "logo", "extra": true}', Asset)
        assert asset.name == "logo"

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_input_is_none(self, text) -> None:
        assert decode_model(text, Asset) is None

    def test_invalid_json_is_none_with_warning(self, capsys) -> None:
        assert decode_model("{not json", Asset) is None
        assert "Cannot decode Asset" in capsys.readouterr().err

    def test_validation_failure_is_none(self) -> None:
        assert decode_model('{"name": "missing id"}', Asset) is None


class TestEncodePayload:
    def test_none_is_empty_string(self) -> None:
        assert encode_payload(None) == ""

    def test_compact_and_drops_none(self) -> None:
        assert encode_payload({"a": 1, "b": None, "c": "x"}) == '{"a":1,"c":"x"}'

    def test_model_dumped_by_field_name(self) -> None:
        asset = Asset(assetId="a1", name="logo")
        assert json.loads(encode_payload(asset)) == {"asset_id": "a1", "name": "logo", "variants": []}

    def test_non_ascii_kept(self) -> None:
        assert encode_payload({"name": "Ünïcode"}) == '{"name":"Ünïcode"}'

    def test_list(self) -> None:
        assert encode_payload([1, 2]) == "[1,2]"
