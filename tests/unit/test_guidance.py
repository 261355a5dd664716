"""Tests for ControlNet/IP-Adapter catalogs and backend request models."""

from __future__ import annotations

import re

import pytest
from pydantic import ValidationError as PydanticValidationError

from panelflow.core.backend import (
    ControlNetRequest,
    GenerationRequest,
    GenerationResult,
    IdentityReference,
    identity_request_from_embedding,
)
from panelflow.core.controlnet import (
    CONTROL_STACK_PRESETS,
    ControlCondition,
    ControlType,
    calculate_total_influence,
)
from panelflow.core.errors import ValidationError
from panelflow.core.ip_adapter import (
    AdapterModel,
    create_embedding,
    get_recommended_settings,
    new_identity_id,
)
from panelflow.core.strategies import resolve_config
from panelflow.core.types import ConfigResolutionOptions


class TestControlNet:
    def test_stack_build_scales_strength(self):
        controls = CONTROL_STACK_PRESETS["pose_depth"].build("/out/p1.png", strength_scale=0.5)
        assert [c.type for c in controls] == [ControlType.OPENPOSE, ControlType.DEPTH]
        assert [c.strength for c in controls] == [pytest.approx(0.425), pytest.approx(0.25)]

    def test_strength_bounds(self):
        with pytest.raises(PydanticValidationError):
            ControlCondition(type=ControlType.CANNY, image="x.png", strength=2.5)

    @pytest.mark.parametrize(
        "strengths, warning",
        [
            ((0.8, 0.5), None),
            ((0.9, 0.7), "High total influence"),
            ((1.2, 1.0), "Very high total influence"),
        ],
    )
    def test_total_influence(self, strengths, warning):
        controls = [ControlCondition(type=ControlType.DEPTH, image="x.png", strength=s) for s in strengths]
        influence = calculate_total_influence(controls)
        if warning is None:
            assert influence["warning"] is None
        else:
            assert influence["warning"].startswith(warning)

    def test_request_needs_a_control(self):
        with pytest.raises(PydanticValidationError):
            ControlNetRequest(prompt="p", output_path="o.png", controls=[])


class TestIpAdapter:
    def test_identity_id_format(self):
        assert re.fullmatch(r"identity_\d+_[0-9a-z]{7}", new_identity_id())

    def test_ids_are_unique(self):
        assert len({new_identity_id() for _ in range(100)}) == 100

    def test_empty_sources_rejected(self):
        with pytest.raises(ValidationError):
            create_embedding([])

    def test_recommended_settings(self):
        settings = get_recommended_settings(AdapterModel.FULL_FACE)
        assert settings["default_strength"] == 0.85
        assert settings["recommended_cfg"] == 6.0


class TestBackendModels:
    def test_request_from_config(self):
        resolved = resolve_config(ConfigResolutionOptions(quality_preset="draft"), "flux1-dev.safetensors")
        request = GenerationRequest.from_config("city at night", resolved, "/out/a.png", seed=3)

        assert request.model == "flux1-dev.safetensors"
        assert request.steps == 15
        assert request.seed == 3
        assert (request.width, request.height) == (768, 1024)

    def test_result_accepts_camel_case(self):
        result = GenerationResult.model_validate(
            {"success": True, "localPath": "/out/a.png", "signedUrl": "https://cdn/a.png"}
        )
        assert result.local_path == "/out/a.png"
        assert GenerationResult(success=True, local_path="/x.png").local_path == "/x.png"

    def test_identity_request_keeps_generation_fields(self):
        embedding = create_embedding(["/refs/a.png"], AdapterModel.STYLE)
        request = identity_request_from_embedding(
            IdentityReference(embedding=embedding),
            GenerationRequest(prompt="p", output_path="/out/a.png", steps=40),
        )
        assert request.steps == 40
        assert request.strength == 0.8
        assert request.adapter_model == AdapterModel.STYLE
