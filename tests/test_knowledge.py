import pytest

from tenantbot.core.errors import NotFoundError, UnauthorizedError
from tenantbot.core.knowledge import KnowledgeManager


@pytest.fixture
def manager(db):
    return KnowledgeManager(db)


@pytest.fixture
def google_bot(make_bot):
    return make_bot(model_provider="Google AI", api_key="g-key")


async def test_add_short_text_as_single_document(manager, supabase, google_bot, owner, fake_embedding):
    documents = await manager.add_knowledge(owner, google_bot["id"], "We open at 9.")

    assert len(documents) == 1
    stored = supabase.rows("documents")[0]
    assert stored["text"] == "We open at 9."
    assert stored["embedding"] == [1.0, 0.0, 0.5]
    assert stored["source_type"] == "inline"
    assert stored["source_metadata"] is None
    assert fake_embedding == [("We open at 9.", "g-key")]

    [audit] = supabase.rows("audit_logs")
    assert audit["action"] == "add_knowledge"
    assert audit["changes"]["after"]["document_ids"] == [stored["id"]]


async def test_long_text_is_chunked_with_metadata(manager, supabase, google_bot, owner, fake_embedding):
    text = "\n\n".join(("sentence number %d. " % i) * 30 for i in range(20))
    documents = await manager.add_knowledge(
        owner, google_bot["id"], text, source_type="website", source_metadata={"url": "https://example.com"}
    )

    assert len(documents) > 1
    for index, doc in enumerate(supabase.rows("documents")):
        assert doc["source_type"] == "website"
        assert doc["source_metadata"]["url"] == "https://example.com"
        assert doc["source_metadata"]["chunk_index"] == index
        assert doc["source_metadata"]["chunk_total"] == len(documents)
    assert len(fake_embedding) == len(documents)


async def test_missing_embedding_key(manager, supabase, make_bot, owner, fake_embedding):
    bot = make_bot()
    with pytest.raises(ValueError, match="Embedding API key is not configured"):
        await manager.add_knowledge(owner, bot["id"], "Some facts")
    assert supabase.rows("documents") == []
    assert supabase.rows("audit_logs")[0]["status"] == "error"


async def test_unsupported_source_type(manager, google_bot, owner):
    with pytest.raises(ValueError, match="Unsupported source type"):
        await manager.add_knowledge(owner, google_bot["id"], "Some facts", source_type="fax")


async def test_stranger_cannot_add(manager, google_bot, stranger, fake_embedding):
    with pytest.raises(UnauthorizedError):
        await manager.add_knowledge(stranger, google_bot["id"], "Some facts")
    assert fake_embedding == []


async def test_list_update_delete(manager, supabase, google_bot, owner, stranger, fake_embedding):
    [document] = await manager.add_knowledge(owner, google_bot["id"], "Old fact")

    listed = await manager.list_documents(owner, google_bot["id"])
    assert [d["text"] for d in listed] == ["Old fact"]
    assert "embedding" not in listed[0]

    updated = await manager.update_document(owner, document["id"], "New fact")
    assert updated["text"] == "New fact"
    assert "embedding" not in updated
    assert fake_embedding[-1] == ("New fact", "g-key")

    with pytest.raises(UnauthorizedError):
        await manager.delete_document(stranger, document["id"])
    assert await manager.delete_document(owner, document["id"]) is True
    assert supabase.rows("documents") == []

    with pytest.raises(NotFoundError):
        await manager.update_document(owner, document["id"], "Again")

    actions = [(a["action"], a["status"]) for a in supabase.rows("audit_logs")]
    assert actions == [
        ("add_knowledge", "success"),
        ("update_document", "success"),
        ("delete_document", "denied"),
        ("delete_document", "success"),
        ("update_document", "error"),
    ]
