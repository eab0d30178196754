"""Unit tests for WAF fingerprinting."""

from __future__ import annotations

import pytest

from llmstxtkit.waf import identify_block


class TestIdentifyBlock:
    def test_cf_ray_header(self) -> None:
        reason = identify_block({"cf-ray": "8a1b2c3d4e5f-LHR"}, None)
        assert reason is not None
        assert reason.startswith("Blocked by Cloudflare WAF (cf-ray header detected)")

    @pytest.mark.parametrize(
        ("server", "vendor"),
        [
            ("cloudflare", "Cloudflare WAF"),
            ("CloudFront", "AWS CloudFront/WAF"),
            ("AkamaiGHost", "Akamai WAF"),
        ],
    )
    def test_server_header_case_insensitive(self, server: str, vendor: str) -> None:
        reason = identify_block({"server": server}, None)
        assert reason is not None
        assert reason.startswith(f"Blocked by {vendor}")

    def test_aws_waf_action_header(self) -> None:
        reason = identify_block({"x-amzn-waf-action": "block"}, None)
        assert reason is not None
        assert "AWS WAF" in reason

    def test_akamai_transformed_header(self) -> None:
        reason = identify_block({"x-akamai-transformed": "9 - 0 pmb=mRUM,1"}, None)
        assert reason is not None
        assert "Akamai WAF" in reason

    def test_challenge_page_in_body(self) -> None:
        body = '<script src="https://challenges.cloudflare.com/turnstile/v0/api.js"></script>'
        reason = identify_block({"server": "nginx"}, body)
        assert reason is not None
        assert "challenge page detected" in reason
        assert "browser verification" in reason

    def test_headers_checked_before_body(self) -> None:
        reason = identify_block({"cf-ray": "x"}, "cf-browser-verification")
        assert reason is not None
        assert "cf-ray header detected" in reason

    def test_no_match_returns_none(self) -> None:
        assert identify_block({"server": "nginx/1.25"}, "<html>Forbidden</html>") is None

    def test_empty_response_returns_none(self) -> None:
        assert identify_block({}, None) is None
