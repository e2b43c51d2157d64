"""领域层模型与协议。

包含：
- models: Conversation / Message / StreamChunk / SendResult。
- session: 本地会话簿记（所有权与状态）。
- exceptions: GatewayError 及各错误分类。
"""
