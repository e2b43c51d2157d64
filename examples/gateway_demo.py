"""Minimal demonstration of the conversation gateway."""

from gateway_core import create_dispatcher
from gateway_core.config.settings import settings

if __name__ == "__main__":
    dispatcher = create_dispatcher(settings)
    created = dispatcher.dispatch({"action": "create"}, caller="demo")
    print("create:", created.status, created.body)
    if created.ok:
        cid = created.body["conversationId"]
        question = "What is 1/2 as a decimal?"
        reply = dispatcher.dispatch({"action": "send", "conversationId": cid, "message": question}, caller="demo")
        print("User:", question)
        print("Agent:", reply.status, reply.body)
        history = dispatcher.dispatch({"action": "history", "conversationId": cid}, caller="demo")
        print("history:", history.body)
