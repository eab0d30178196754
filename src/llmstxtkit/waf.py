"""Best-effort detection of protective web infrastructure (WAFs, bot shields).

``identify_block`` returns a human-readable reason when a response carries a
known vendor fingerprint, or ``None`` when nothing matched. ``None`` means
"could not identify", never "not blocked".
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

_AUTOMATED_ACCESS = "The site's bot protection is preventing automated access."


@dataclass(frozen=True)
class BlockSignature:
    vendor: str
    where: Literal["header_present", "server_contains", "body_contains"]
    needle: str
    detail: str


# Order matters: the first match wins, headers before body.
BLOCK_SIGNATURES: tuple[BlockSignature, ...] = (
    BlockSignature("Cloudflare WAF", "header_present", "cf-ray", "cf-ray header detected"),
    BlockSignature(
        "Cloudflare WAF", "server_contains", "cloudflare", "server: cloudflare header detected"
    ),
    BlockSignature(
        "AWS CloudFront/WAF", "server_contains", "cloudfront", "server: CloudFront header detected"
    ),
    BlockSignature("Akamai WAF", "server_contains", "akamaighost", "server: AkamaiGHost header detected"),
    BlockSignature("AWS WAF", "header_present", "x-amzn-waf-action", "x-amzn-waf-action header detected"),
    BlockSignature(
        "Akamai WAF", "header_present", "x-akamai-transformed", "x-akamai-transformed header detected"
    ),
    BlockSignature(
        "Cloudflare WAF",
        "body_contains",
        "cf-browser-verification",
        "challenge page detected in response body",
    ),
    BlockSignature(
        "Cloudflare WAF",
        "body_contains",
        "challenges.cloudflare.com",
        "challenge page detected in response body",
    ),
)


def _matches(signature: BlockSignature, headers: Mapping[str, str], body: str | None) -> bool:
    if signature.where == "header_present":
        return signature.needle in headers
    if signature.where == "server_contains":
        return signature.needle in headers.get("server", "").lower()
    return body is not None and signature.needle in body.lower()


def _reason(signature: BlockSignature) -> str:
    if signature.where == "body_contains":
        return (
            f"Blocked by {signature.vendor} ({signature.detail}). "
            "The site requires browser verification that automated clients cannot complete."
        )
    return f"Blocked by {signature.vendor} ({signature.detail}). {_AUTOMATED_ACCESS}"


def identify_block(headers: Mapping[str, str], body: str | None) -> str | None:
    """Return a block diagnosis for the response, or None if no vendor matched.

    ``headers`` must use lower-cased names.
    """
    for signature in BLOCK_SIGNATURES:
        if _matches(signature, headers, body):
            return _reason(signature)
    return None
