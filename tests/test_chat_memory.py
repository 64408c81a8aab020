from langchain_core.messages import AIMessage, HumanMessage

from tenantbot.core.chat_memory import ConversationMemory


async def test_load_maps_roles(db, supabase):
    supabase.tables["messages"] = [
        {"id": "1", "conversation_id": "c-1", "role": "user", "content": "Hi", "created_at": 1},
        {"id": "2", "conversation_id": "c-1", "role": "bot", "content": "Hello!", "created_at": 2},
        {"id": "3", "conversation_id": "c-2", "role": "user", "content": "Other", "created_at": 3},
    ]
    memory = ConversationMemory(db, "c-1")
    messages = await memory.load()

    assert [type(m) for m in messages] == [HumanMessage, AIMessage]
    assert memory.to_provider_messages() == [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello!"},
    ]


async def test_user_message_is_not_duplicated(db, supabase):
    supabase.tables["messages"] = [
        {"id": "1", "conversation_id": "c-1", "role": "user", "content": "Hours?", "created_at": 1},
    ]
    memory = ConversationMemory(db, "c-1")
    await memory.load()

    memory.add_user_message("Hours?")
    assert len(memory.messages) == 1

    memory.add_ai_message("9 to 5")
    memory.add_user_message("Hours?")
    assert len(memory.messages) == 3


def test_provider_messages_skip_empty_and_limit(db):
    memory = ConversationMemory(db, "c-1")
    memory.add_user_message("one")
    memory.add_ai_message("")
    memory.add_user_message("two")
    memory.add_ai_message("three")

    assert [m["content"] for m in memory.to_provider_messages()] == ["one", "two", "three"]
    assert [m["content"] for m in memory.to_provider_messages(limit=2)] == ["two", "three"]
