import pytest

from cellatlas_chatbot.conversation.orchestrator import handle_turn
from cellatlas_chatbot.core.plot_state import PlotType
from cellatlas_chatbot.core.resolver import PlotStateResolver
from tests.fakes import FakeAtlasClient, make_matrix_state


@pytest.fixture(autouse=True)
def exports_to_tmp(tmp_path, monkeypatch):
    monkeypatch.setattr("cellatlas_chatbot.core.exports.EXPORTS_DIR", tmp_path)


@pytest.mark.asyncio
async def test_base_then_add_turns(fake_client, store):
    resolver = PlotStateResolver(fake_client)

    first = await handle_turn(
        "average.geneExpression", {"organism": "h_sapiens", "organ": "lung", "features": "INS"}, store, resolver
    )
    second = await handle_turn("add.gene", {"features": "GCG"}, store, resolver)

    assert first.updated and second.updated
    assert store.current.features.to_param() == "INS,GCG"
    assert store.current.plot_type is PlotType.HEATMAP
    assert "INS, GCG" in second.message


@pytest.mark.asyncio
async def test_failed_turn_keeps_previous_plot(store):
    prior = make_matrix_state("GeneA")
    store.publish(store.begin_turn(), prior)
    resolver = PlotStateResolver(FakeAtlasClient(fail=["average"]))

    turn = await handle_turn("add.gene", {"features": "GeneB"}, store, resolver)

    assert not turn.updated
    assert turn.plot_state is prior
    assert store.current is prior
    assert turn.message.startswith("Sorry")


@pytest.mark.asyncio
async def test_farewell_resets_store(fake_client, store):
    store.publish(store.begin_turn(), make_matrix_state("GeneA"))

    turn = await handle_turn("greetings.bye", {}, store, PlotStateResolver(fake_client))

    assert turn.reset
    assert turn.message == ""
    assert store.current is None
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_download_goes_through_no_api_handler(fake_client, store):
    store.publish(store.begin_turn(), make_matrix_state("GeneA"))

    turn = await handle_turn("download", {}, store, PlotStateResolver(fake_client))

    assert turn.download_path is not None
    assert not turn.updated
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_unrecognized_intent_keeps_state(fake_client, store):
    prior = make_matrix_state("GeneA")
    store.publish(store.begin_turn(), prior)

    turn = await handle_turn("foo.bar", {}, store, PlotStateResolver(fake_client))

    assert not turn.updated
    assert store.current is prior


@pytest.mark.asyncio
async def test_adding_shown_feature_is_not_reported_as_failure(fake_client, store):
    prior = make_matrix_state("GeneA,GeneB")
    store.publish(store.begin_turn(), prior)

    turn = await handle_turn("add.gene", {"features": "GeneB"}, store, PlotStateResolver(fake_client))

    assert not turn.updated
    assert store.current is prior
    assert not turn.message.startswith("Sorry")
    assert "already shown" in turn.message
