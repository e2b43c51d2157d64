"""Content Filter：在增量文本到达用户之前剔除 Provider 泄漏的系统/指令文本。

泄漏标记可能横跨两个增量（例如先来 "### Sys"，再来 "tem Rules"），
所以过滤器先缓冲文本，直到出现句末标点（``.`` ``!`` ``?``）或流结束，
再把缓冲按句逐段拿去和规则表比对：

- 命中任意规则：整句丢弃（不做局部打码）；
- 未命中：整句输出。

最后一个句末标点之后的尾巴留在缓冲里，等待后续增量。

流结束时残留的缓冲同样要比对，干净就输出，不会因为没有标点而被吞掉。
空白规范化（3 个以上换行压成 2 个、去掉首尾空白）只在最终 flush 时做一次。

规则表是需要持续维护的配置面：它依赖特定 Provider 的泄漏措辞，
Provider 改了措辞规则就会失效，这不是算法层面的保证。
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Tuple

import yaml

from gateway_core.domain.exceptions import ConfigurationError
from gateway_core.infrastructure.logging.logger import logger


SENTENCE_TERMINATORS = ".!?"
LEAK_SCOPE = "leak-marker"

_EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class FilterRule:
    """一条泄漏规则。pattern 应当匹配高度特定的标记短语，而不是通用标点。"""

    name: str
    pattern: str
    scope: str = LEAK_SCOPE
    ignore_case: bool = True
    compiled: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        flags = re.IGNORECASE if self.ignore_case else 0
        object.__setattr__(self, "compiled", re.compile(self.pattern, flags))

    def matches(self, text: str) -> bool:
        return self.compiled.search(text) is not None


@dataclass(frozen=True)
class FilterRuleSet:
    """带版本号的规则表，启动时构建，运行期不可变。"""

    version: str
    rules: Tuple[FilterRule, ...]

    def first_match(self, text: str) -> Optional[FilterRule]:
        for rule in self.rules:
            if rule.scope == LEAK_SCOPE and rule.matches(text):
                return rule
        return None

    def matches(self, text: str) -> bool:
        return self.first_match(text) is not None

    def extended(self, version: str, extra: Iterable[FilterRule]) -> "FilterRuleSet":
        return FilterRuleSet(version=version, rules=self.rules + tuple(extra))


DEFAULT_RULES = FilterRuleSet(
    version="2024.1",
    rules=(
        FilterRule("system_heading", r"#{1,6}\s*system\s+(rules|prompt|instructions?|message)\b"),
        FilterRule("instruction_heading", r"#{1,6}\s*(assistant|bot|ai)\s+(instructions?|guidelines|rules)\b"),
        FilterRule("system_prompt_reference", r"\b(my|the|this)\s+system\s+prompt\b"),
        FilterRule("chat_template_token", r"<\|\s*(system|im_start|im_end|start_header_id|end_header_id)\s*\|>"),
        FilterRule("inst_tag", r"\[/?INST\]", ignore_case=False),
        FilterRule("sys_tag", r"<<\s*/?SYS\s*>>", ignore_case=False),
        FilterRule("do_not_reveal", r"\bdo\s+not\s+(reveal|disclose|share)\s+(these|your|the)\s+(instructions|system\s+prompt)\b"),
        FilterRule("tutor_persona", r"\byou\s+are\s+a\s+helpful\s+ai\s+assistant\s+for\s+students\b"),
    ),
)


def load_rules_file(path: str, base: FilterRuleSet = DEFAULT_RULES) -> FilterRuleSet:
    """从 YAML 文件加载额外规则并追加到 base 之后。

    文件格式::

        version: "2024.2"
        rules:
          - name: leaked_banner
            pattern: "welcome to the playlab assistant"
    """

    p = Path(path).expanduser()
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError("Content filter rules could not be loaded", cause=str(e), code="BAD_FILTER_RULES")
    if not isinstance(data, dict) or not isinstance(data.get("rules", []), list):
        raise ConfigurationError("Content filter rules file is malformed", cause=str(p), code="BAD_FILTER_RULES")

    extra: List[FilterRule] = []
    for idx, raw in enumerate(data.get("rules") or []):
        if not isinstance(raw, dict) or not raw.get("pattern"):
            raise ConfigurationError(
                "Content filter rule is missing a pattern",
                cause={"file": str(p), "index": idx},
                code="BAD_FILTER_RULES",
            )
        try:
            extra.append(
                FilterRule(
                    name=str(raw.get("name") or f"rule_{idx}"),
                    pattern=str(raw["pattern"]),
                    scope=str(raw.get("scope") or LEAK_SCOPE),
                    ignore_case=bool(raw.get("ignore_case", True)),
                )
            )
        except re.error as e:
            raise ConfigurationError(
                "Content filter rule has an invalid pattern",
                cause={"file": str(p), "index": idx, "error": str(e)},
                code="BAD_FILTER_RULES",
            )
    version = str(data.get("version") or f"{base.version}+local")
    return base.extended(version, extra)


def build_rule_set(cfg) -> FilterRuleSet:
    path = getattr(cfg, "filter_rules_file", None)
    rules = load_rules_file(path) if path else DEFAULT_RULES
    logger.info(
        "content filter ready",
        extra={"extra": {"rules_version": rules.version, "rule_count": len(rules.rules)}},
    )
    return rules


# ---- 纯函数形式 ----

def _split_spans(buffer: str) -> Tuple[List[str], str]:
    """按句末标点逐句切分；最后一个标点之后的尾巴原样返回。"""

    spans: List[str] = []
    start = 0
    for idx, ch in enumerate(buffer):
        if ch in SENTENCE_TERMINATORS:
            spans.append(buffer[start: idx + 1])
            start = idx + 1
    return spans, buffer[start:]


def _filter_spans(buffer: str, rules: FilterRuleSet) -> Tuple[str, str, int]:
    spans, rest = _split_spans(buffer)
    kept = [s for s in spans if not rules.matches(s)]
    return "".join(kept), rest, len(spans) - len(kept)


def filter_delta(
    accumulated: str,
    new_delta: str,
    rules: FilterRuleSet = DEFAULT_RULES,
) -> Tuple[str, str]:
    """``(已缓冲文本, 新增量) -> (本次可输出文本, 更新后的缓冲)``。

    缓冲按句末标点逐句比对，只丢弃命中规则的那一句；最后一个标点之后的尾巴继续缓冲。
    """

    emit, rest, _ = _filter_spans(accumulated + (new_delta or ""), rules)
    return emit, rest


def flush_residual(accumulated: str, rules: FilterRuleSet = DEFAULT_RULES) -> str:
    """流结束时处理残留缓冲：干净则输出，命中规则则丢弃。"""

    if not accumulated or rules.matches(accumulated):
        return ""
    return accumulated


def normalize_whitespace(text: str) -> str:
    return _EXCESS_NEWLINES.sub("\n\n", text).strip()


class ContentFilter:
    """单次 send 调用独占的过滤器实例（缓冲不在调用之间共享）。"""

    def __init__(self, rules: FilterRuleSet = DEFAULT_RULES):
        self._rules = rules
        self._pending = ""
        self._parts: List[str] = []
        self.dropped = 0
        self.finished = False

    def feed(self, delta: str) -> str:
        """喂入一个增量，返回此刻可以放行的文本（可能为空串）。"""

        if self.finished:
            raise RuntimeError("ContentFilter already finished")
        emit, self._pending, dropped = _filter_spans(self._pending + (delta or ""), self._rules)
        self.dropped += dropped
        if emit:
            self._parts.append(emit)
        return emit

    def flush(self) -> str:
        """流结束：处理残留缓冲，返回最后一段可放行文本。"""

        if self.finished:
            return ""
        tail = flush_residual(self._pending, self._rules)
        if self._pending and not tail:
            self.dropped += 1
        self._pending = ""
        self.finished = True
        if tail:
            self._parts.append(tail)
        return tail

    def result(self) -> str:
        """最终文本：只在这里做一次空白规范化。"""

        if not self.finished:
            self.flush()
        return normalize_whitespace("".join(self._parts))
