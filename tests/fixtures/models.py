import pytest

from agentloop.models import Model


class ScriptedModel(Model):
    """Returns the scripted answers in order, whichever entry point is called, and records every call."""

    def __init__(self, responses):
        super().__init__(model_id="scripted-model")
        self.responses = list(responses)
        self.calls = []

    def _next_response(self):
        if not self.responses:
            raise RuntimeError("No scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def generate(self, messages):
        self.calls.append({"method": "generate", "messages": list(messages), "tools": None})
        return self._next_response()

    def generate_with_tools(self, messages, tools):
        self.calls.append({"method": "generate_with_tools", "messages": list(messages), "tools": tools})
        return self._next_response()


class RepeatingModel(Model):
    """Always gives the same answer."""

    def __init__(self, response):
        super().__init__(model_id="repeating-model")
        self.response = response
        self.call_count = 0

    def generate(self, messages):
        self.call_count += 1
        return self.response

    def generate_with_tools(self, messages, tools):
        self.call_count += 1
        return self.response


@pytest.fixture
def scripted_model():
    def make_model(*responses):
        return ScriptedModel(responses)

    return make_model
