import agentloop
from agentloop import ChatMessage, MessageRole


def test_import():
    assert agentloop.__version__
    for name in ["ToolCallingAgent", "CodeAgent", "MultiStepAgent", "AgentConfig", "Tool", "tool", "AgentMemory"]:
        assert hasattr(agentloop, name)


def test_chat_message_round_trip_from_package():
    message = ChatMessage(role=MessageRole.ASSISTANT, content="calling echo")
    assert ChatMessage.from_dict(message.dict()) == message
