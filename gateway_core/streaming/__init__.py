"""流式响应处理：Stream Decoder（字节 -> 增量）与 Content Filter（增量 -> 可放行文本）。"""

from gateway_core.streaming.content_filter import ContentFilter, FilterRule, FilterRuleSet, DEFAULT_RULES
from gateway_core.streaming.decoder import DecoderState, StreamDecoder

__all__ = [
    "ContentFilter",
    "FilterRule",
    "FilterRuleSet",
    "DEFAULT_RULES",
    "DecoderState",
    "StreamDecoder",
]
