"""Rule compilation and matching logic (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
import ipaddress
import logging
import re
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple, Union

from pastescope.core.errors import ConfigError
from pastescope.core.models import MatchResult

LOGGER = logging.getLogger(__name__)

RULE_TYPE_LITERAL = "literal"
RULE_TYPE_CIDR = "cidr"

# Only ASCII IPv4 dotted quads are captured; the octet range is checked when parsing.
IPV4_PATTERN = re.compile(r"\b((?:\d{1,3}\.){3}\d{1,3})\b", re.ASCII)


@dataclass(frozen=True)
class LiteralRule:
    """Matches the first line containing the keyword."""

    keyword: str
    pattern: re.Pattern
    exceptions: Tuple[str, ...]


@dataclass(frozen=True)
class CidrRule:
    """Matches the first dotted quad in the body if it lies inside ``network``."""

    keyword: str
    pattern: re.Pattern
    network: ipaddress.IPv4Network
    exceptions: Tuple[str, ...]


Rule = Union[LiteralRule, CidrRule]
RuleSet = Mapping[str, Rule]


def _literal_pattern(keyword: str) -> re.Pattern:
    # Capture the whole line so the alert shows the keyword in context.
    return re.compile(rf"^(.*\b{re.escape(keyword)}.*)$", re.IGNORECASE | re.MULTILINE)


def _parse_exceptions(definition: dict, keyword: str) -> Tuple[str, ...]:
    raw = definition.get("exceptions") or []
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise ConfigError(f"exceptions for keyword {keyword!r} must be a list of strings")
    return tuple(raw)


def build_rule(definition: dict) -> Rule:
    """Compile one ``{keyword, type, exceptions}`` definition."""

    keyword = definition.get("keyword")
    if not isinstance(keyword, str) or not keyword:
        raise ConfigError(f"rule definition without a keyword: {definition!r}")

    exceptions = _parse_exceptions(definition, keyword)
    rule_type = str(definition.get("type") or RULE_TYPE_LITERAL).strip().lower()

    if rule_type == RULE_TYPE_CIDR:
        try:
            network = ipaddress.ip_network(keyword.strip(), strict=False)
        except ValueError as exc:
            raise ConfigError(f"could not parse cidr {keyword}: {exc}") from exc
        if not isinstance(network, ipaddress.IPv4Network):
            raise ConfigError(f"could not parse cidr {keyword}: only IPv4 ranges are supported")
        return CidrRule(
            keyword=keyword,
            pattern=IPV4_PATTERN,
            network=network,
            exceptions=exceptions,
        )

    if rule_type == RULE_TYPE_LITERAL:
        return LiteralRule(
            keyword=keyword,
            pattern=_literal_pattern(keyword),
            exceptions=exceptions,
        )

    raise ConfigError(f"unknown rule type {rule_type!r} for keyword {keyword!r}")


def build_rules(definitions: Iterable[dict]) -> RuleSet:
    """Compile all rule definitions into an immutable rule set.

    Any invalid definition aborts the whole build, so callers never end up
    with a partial rule set.
    """

    compiled = {}
    for definition in definitions:
        if not isinstance(definition, dict):
            raise ConfigError(f"rule definition must be an object, got {definition!r}")
        rule = build_rule(definition)
        compiled[rule.keyword] = rule
    return MappingProxyType(compiled)


def _matched_exception(text: str, exceptions: Iterable[str]) -> bool:
    for exception in exceptions:
        if exception in text:
            LOGGER.debug("String %r contains exception %r", text, exception)
            return True
    return False


def _match_literal(body: str, rule: LiteralRule) -> Optional[str]:
    found = rule.pattern.search(body)
    if found is None:
        return None
    line = found.group(1).strip()
    if _matched_exception(line, rule.exceptions):
        return None
    return line


def _match_cidr(body: str, rule: CidrRule) -> Optional[str]:
    found = rule.pattern.search(body)
    if found is None:
        return None
    candidate = found.group(1).strip()
    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        LOGGER.debug("%r is not a valid ip", candidate)
        return None
    if address not in rule.network:
        return None
    LOGGER.debug("%s contains %s", rule.network, address)
    return candidate


def match_rules(body: str, rules: RuleSet) -> MatchResult:
    """Return every rule that matches the given paste body.

    Matching logic:
    - Each rule only looks at its first candidate in the body.
    - Literal rules capture the whole (stripped) line and are suppressed if
      that line contains one of the rule's exceptions.
    - CIDR rules capture the first dotted quad and match when it parses and
      lies inside the rule's network.
    - Rules never influence each other.
    """

    found: dict[str, str] = {}
    for identifier, rule in rules.items():
        if isinstance(rule, CidrRule):
            hit = _match_cidr(body, rule)
        else:
            hit = _match_literal(body, rule)
        if hit is not None:
            found[identifier] = hit
    return MatchResult(matches=found)


def describe_rules(rules: RuleSet) -> List[str]:
    """Human-readable one-liners for startup logging."""

    lines = []
    for identifier, rule in sorted(rules.items()):
        kind = RULE_TYPE_CIDR if isinstance(rule, CidrRule) else RULE_TYPE_LITERAL
        suffix = f" (exceptions: {', '.join(rule.exceptions)})" if rule.exceptions else ""
        lines.append(f"{kind}: {identifier}{suffix}")
    return lines
