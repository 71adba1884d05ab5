"""End-to-end turn tests against the in-memory store and fake collaborators."""

import asyncio

import pytest

from brain_chat.core.errors import BrainNotFound, ConversationNotFound, GenerationFailed
from brain_chat.core.schemas_cards import Citation, IntentCategory, StoredMessage
from brain_chat.core.turn_engine import ConversationEngine, EngineConfig
from tests.fakes.fake_db import FakeAnalyzer, FakeConversationStore, FakeGenerator, FakeSummarizer
from tests.fixtures_cards import (
    BRAIN_ID,
    BRAND_VOICE_ID,
    CONVERSATION_ID,
    POSITIONING_ID,
    STYLE_RULES_ID,
)

VOICE_ANSWER = "Based on the Brand Voice card, your email should feel warm and direct."


def _engine(fake_catalog, fake_store, generator=None, **kwargs):
    return ConversationEngine(
        catalog=fake_catalog,
        store=fake_store,
        generator=generator or FakeGenerator([VOICE_ANSWER]),
        **kwargs,
    )


def _seed(store, count, cited_at=None):
    """Insert ``count`` alternating messages; ``cited_at`` maps seq -> cited card ids."""
    cited_at = cited_at or {}
    for seq in range(1, count + 1):
        store.insert_message(
            StoredMessage(
                conversation_id=CONVERSATION_ID,
                role="user" if seq % 2 else "assistant",
                content=f"turn {seq}",
                sequence_number=seq,
                card_citations=[
                    Citation(card_id=c, card_type="T", excerpts=[], confidence=30)
                    for c in cited_at.get(seq, [])
                ],
            )
        )
    store.update_conversation(CONVERSATION_ID, message_count=count)


@pytest.mark.asyncio
async def test_full_turn(fake_catalog, fake_store):
    generator = FakeGenerator([VOICE_ANSWER])
    engine = _engine(fake_catalog, fake_store, generator)

    result = await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "  Write an email for my list ")

    assert result.intent.category == IntentCategory.CONTENT_GENERATION
    assert result.relevance_map[BRAND_VOICE_ID] == 94
    assert result.relevance_map[STYLE_RULES_ID] == 94
    assert result.relevance_map[POSITIONING_ID] == 20

    assert [c.card_id for c in result.citations] == [BRAND_VOICE_ID]
    assert result.citations[0].confidence == 60
    # 85 * 0.5 + 94 * 0.3 + 60 * 0.2 = 82.7
    assert result.confidence == 83

    assert result.user_message.content == "Write an email for my list"
    assert result.user_message.sequence_number == 1
    assert result.assistant_message.sequence_number == 2
    assert result.assistant_message.content == VOICE_ANSWER
    assert result.assistant_message.metadata["cards_referenced"] == [BRAND_VOICE_ID]
    assert result.assistant_message.metadata["confidence_score"] == 83
    assert result.assistant_message.metadata["model"] == "fake-model"

    state = fake_store.conversations[CONVERSATION_ID]
    assert state.message_count == 2
    assert state.active_card_ids == [BRAND_VOICE_ID, STYLE_RULES_ID]
    assert result.conversation == state

    sent = generator.calls[0]
    assert sent[0]["role"] == "system"
    assert "Sunrise Coaching" in sent[0]["content"]
    assert sent[-1] == {"role": "user", "content": "Write an email for my list"}


@pytest.mark.asyncio
async def test_uncited_answer_gets_baseline_confidence(fake_catalog, fake_store):
    engine = _engine(fake_catalog, fake_store, FakeGenerator(["Sure thing."]))

    result = await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "hello there")

    assert result.citations == []
    assert result.confidence == 65
    assert fake_store.conversations[CONVERSATION_ID].active_card_ids == []


@pytest.mark.asyncio
async def test_analyzer_drives_card_loading(fake_catalog, fake_store):
    analyzer = FakeAnalyzer(
        {"category": "business_info", "relevantCardTypes": ["POSITIONING_CARD"], "confidence": 90}
    )
    engine = _engine(fake_catalog, fake_store, FakeGenerator(["Sure thing."]), analyzer=analyzer)

    result = await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "Who do we sell to?")

    assert analyzer.calls == 1
    assert result.relevance_map[POSITIONING_ID] == 98
    assert fake_store.conversations[CONVERSATION_ID].active_card_ids == [POSITIONING_ID]


@pytest.mark.asyncio
async def test_excerpt_length_reaches_prompt_label(fake_catalog, fake_store):
    analyzer = FakeAnalyzer({"category": "content_generation", "relevantCardTypes": [], "confidence": 60})
    generator = FakeGenerator(["Sure thing."])
    engine = _engine(
        fake_catalog, fake_store, generator, analyzer=analyzer, config=EngineConfig(excerpt_length=120)
    )

    result = await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "Write a caption")

    assert result.relevance_map[STYLE_RULES_ID] == 70
    system_prompt = generator.calls[0][0]["content"]
    assert "[EXCERPT - First 120 characters]" in system_prompt
    assert "First 500 characters" not in system_prompt


@pytest.mark.asyncio
async def test_history_is_replayed(fake_catalog, fake_store):
    _seed(fake_store, 2)
    generator = FakeGenerator(["Sure thing."])
    engine = _engine(fake_catalog, fake_store, generator)

    result = await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "hello there")

    sent = generator.calls[0]
    assert [m["content"] for m in sent[1:]] == ["turn 1", "turn 2", "hello there"]
    assert result.user_message.sequence_number == 3
    assert result.assistant_message.sequence_number == 4


# ─── Failures ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_generation_failure_writes_no_assistant_message(fake_catalog, fake_store):
    engine = _engine(fake_catalog, fake_store, FakeGenerator(fail=True))

    with pytest.raises(GenerationFailed):
        await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "Write an email")

    messages = fake_store.messages[CONVERSATION_ID]
    assert [(m.role, m.sequence_number) for m in messages] == [("user", 1)]
    state = fake_store.conversations[CONVERSATION_ID]
    assert state.message_count == 1
    assert state.active_card_ids == []


@pytest.mark.asyncio
async def test_turn_after_failure_does_not_reuse_sequence_numbers(fake_catalog, fake_store):
    failing = _engine(fake_catalog, fake_store, FakeGenerator(fail=True))
    with pytest.raises(GenerationFailed):
        await failing.process_turn(BRAIN_ID, CONVERSATION_ID, "Write an email")

    engine = _engine(fake_catalog, fake_store)
    result = await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "Write an email")

    assert result.user_message.sequence_number == 2
    assert result.assistant_message.sequence_number == 3
    assert fake_store.conversations[CONVERSATION_ID].message_count == 3


class _FailingActiveSetStore(FakeConversationStore):
    """Store whose first active-set write fails."""

    def __init__(self):
        super().__init__()
        self.fail_active_set = True

    def update_conversation(self, conversation_id, **fields):
        if "active_card_ids" in fields and self.fail_active_set:
            self.fail_active_set = False
            raise RuntimeError("connection reset")
        return super().update_conversation(conversation_id, **fields)


@pytest.mark.asyncio
async def test_failed_final_update_does_not_block_next_turn(fake_catalog):
    store = _FailingActiveSetStore()
    store.add_conversation(BRAIN_ID, CONVERSATION_ID)
    engine = _engine(fake_catalog, store)

    with pytest.raises(RuntimeError):
        await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "Write an email")

    assert [(m.role, m.sequence_number) for m in store.messages[CONVERSATION_ID]] == [
        ("user", 1),
        ("assistant", 2),
    ]
    assert store.conversations[CONVERSATION_ID].message_count == 2

    result = await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "Write another one")

    assert result.user_message.sequence_number == 3
    assert result.assistant_message.sequence_number == 4
    assert result.conversation.message_count == 4


@pytest.mark.asyncio
async def test_unknown_conversation(fake_catalog, fake_store):
    engine = _engine(fake_catalog, fake_store)
    with pytest.raises(ConversationNotFound):
        await engine.process_turn(BRAIN_ID, "missing", "hello")


@pytest.mark.asyncio
async def test_unknown_conversations_leave_no_locks(fake_catalog, fake_store):
    engine = _engine(fake_catalog, fake_store)

    for i in range(500):
        with pytest.raises(ConversationNotFound):
            await engine.process_turn(BRAIN_ID, f"missing-{i}", "hello")

    assert len(engine._locks) == 0


@pytest.mark.asyncio
async def test_conversation_of_another_brain_is_not_found(fake_catalog, fake_store):
    engine = _engine(fake_catalog, fake_store)
    with pytest.raises(ConversationNotFound):
        await engine.process_turn("brain-2", CONVERSATION_ID, "hello")


@pytest.mark.asyncio
async def test_unknown_brain(fake_catalog, fake_store):
    fake_store.add_conversation("brain-2", "conv-2")
    engine = _engine(fake_catalog, fake_store)
    with pytest.raises(BrainNotFound):
        await engine.process_turn("brain-2", "conv-2", "hello")


@pytest.mark.asyncio
async def test_empty_message_is_rejected(fake_catalog, fake_store):
    engine = _engine(fake_catalog, fake_store)
    with pytest.raises(ValueError):
        await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "   ")
    assert fake_store.messages[CONVERSATION_ID] == []


# ─── Working set ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_recently_cited_active_card_is_retained(fake_catalog, fake_store):
    _seed(fake_store, 2, cited_at={2: [POSITIONING_ID]})
    fake_store.update_conversation(CONVERSATION_ID, active_card_ids=[POSITIONING_ID])
    engine = _engine(fake_catalog, fake_store, FakeGenerator(["Sure thing."]))

    await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "hello there")

    assert fake_store.conversations[CONVERSATION_ID].active_card_ids == [POSITIONING_ID]


@pytest.mark.asyncio
async def test_active_card_outside_decay_window_is_evicted(fake_catalog, fake_store):
    _seed(fake_store, 2, cited_at={2: [POSITIONING_ID]})
    fake_store.update_conversation(CONVERSATION_ID, active_card_ids=[POSITIONING_ID])
    engine = _engine(
        fake_catalog, fake_store, FakeGenerator(["Sure thing."]), config=EngineConfig(decay_window=2)
    )

    await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "hello there")

    # window covers only this turn's two messages
    assert fake_store.conversations[CONVERSATION_ID].active_card_ids == []


# ─── Concurrency ─────────────────────────────────────────────────────────────


class _YieldingGenerator(FakeGenerator):
    async def generate(self, messages):
        await asyncio.sleep(0.01)
        return await super().generate(messages)


@pytest.mark.asyncio
async def test_concurrent_turns_are_serialized(fake_catalog, fake_store):
    engine = _engine(fake_catalog, fake_store, _YieldingGenerator(["Sure thing."]))

    results = await asyncio.gather(
        engine.process_turn(BRAIN_ID, CONVERSATION_ID, "hello there"),
        engine.process_turn(BRAIN_ID, CONVERSATION_ID, "hello again"),
    )

    sequences = sorted(
        n for r in results for n in (r.user_message.sequence_number, r.assistant_message.sequence_number)
    )
    assert sequences == [1, 2, 3, 4]
    assert fake_store.conversations[CONVERSATION_ID].message_count == 4
    assert engine._locks == {}


@pytest.mark.asyncio
async def test_lock_is_released_after_failed_turn(fake_catalog, fake_store):
    engine = _engine(fake_catalog, fake_store, FakeGenerator(fail=True))

    with pytest.raises(GenerationFailed):
        await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "hello there")

    assert engine._locks == {}


# ─── Compaction ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_compaction_runs_when_threshold_is_crossed(fake_catalog, fake_store):
    _seed(fake_store, 8)
    summarizer = FakeSummarizer()
    generator = FakeGenerator(["Sure thing."])
    engine = _engine(fake_catalog, fake_store, generator, summarizer=summarizer)

    result = await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "hello there")

    assert result.conversation.message_count == 10
    assert result.conversation.context_summary == "Summary #1"
    assert fake_store.conversations[CONVERSATION_ID].context_summary == "Summary #1"

    # 12 is not a compaction point; the summary reaches the next prompt
    await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "hello again")
    assert len(summarizer.transcripts) == 1
    assert "Summary #1" in generator.calls[-1][0]["content"]


@pytest.mark.asyncio
async def test_compaction_failure_does_not_fail_the_turn(fake_catalog, fake_store):
    _seed(fake_store, 8)
    fake_store.update_conversation(CONVERSATION_ID, context_summary="old summary")
    engine = _engine(
        fake_catalog, fake_store, FakeGenerator(["Sure thing."]), summarizer=FakeSummarizer(fail=True)
    )

    result = await engine.process_turn(BRAIN_ID, CONVERSATION_ID, "hello there")

    assert result.assistant_message.sequence_number == 10
    assert result.conversation.context_summary == "old summary"


def test_engine_config_from_settings():
    from brain_chat.core.config import Settings

    settings = Settings(
        SUPABASE_URL="https://test.supabase.co",
        SUPABASE_SERVICE_ROLE_KEY="test-key",
        OPENAI_API_KEY="test-openai-key",
        ACTIVE_CARDS_DECAY_MESSAGES=6,
        CONTEXT_SUMMARY_THRESHOLD=12,
    )
    config = EngineConfig.from_settings(settings)
    assert config.decay_window == 6
    assert config.summary_threshold == 12
    assert config.excerpt_length == 500
