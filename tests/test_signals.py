"""
Signal Tests — lifecycle hooks fired by model persistence.
"""

import logging

import pytest

from palmrecord.models.signals import (
    Signal,
    post_delete,
    post_save,
    pre_delete,
    pre_save,
    receiver,
)

from blog_models import Product, User


class TestSignalDispatch:

    @pytest.mark.asyncio
    async def test_sync_and_async_receivers(self):
        signal = Signal("custom")
        calls = []

        @signal.connect
        def first(sender, **kwargs):
            calls.append(("first", kwargs["value"]))
            return 1

        @signal.connect(priority=10)
        async def early(sender, **kwargs):
            calls.append(("early", kwargs["value"]))
            return 2

        results = await signal.send(Product, value="v")

        assert results == [2, 1]
        assert calls == [("early", "v"), ("first", "v")]

    @pytest.mark.asyncio
    async def test_sender_filter(self):
        signal = Signal("filtered")
        seen = []
        signal.connect(lambda sender, **kw: seen.append(sender), sender=User)

        await signal.send(Product)
        await signal.send(User)

        assert seen == [User]
        assert signal.has_listeners(User)
        assert not Signal("empty").has_listeners()

    @pytest.mark.asyncio
    async def test_failing_receiver_is_logged_and_returned(self, caplog):
        signal = Signal("fragile")
        after = []

        @signal.connect
        def broken(sender, **kwargs):
            raise ValueError("bad receiver")

        @signal.connect
        def healthy(sender, **kwargs):
            after.append(True)

        with caplog.at_level(logging.ERROR, logger="palmrecord.models.signals"):
            results = await signal.send(Product)

        assert isinstance(results[0], ValueError)
        assert after == [True]
        assert any("bad receiver" in r.getMessage() for r in caplog.records)

    def test_connect_is_idempotent_and_disconnects(self):
        signal = Signal("dupes")

        def handler(sender, **kwargs):
            pass

        signal.connect(handler)
        signal.connect(handler)
        assert signal.receivers == [handler]
        assert signal.disconnect(handler) is True
        assert signal.disconnect(handler) is False

    @pytest.mark.asyncio
    async def test_connected_context(self):
        signal = Signal("scoped")
        seen = []

        def handler(sender, **kwargs):
            seen.append(sender)

        with signal.connected(handler):
            await signal.send(Product)
        await signal.send(Product)

        assert seen == [Product]


class TestPersistenceSignals:

    @pytest.mark.asyncio
    async def test_save_signals(self, db):
        events = []

        @pre_save.connect(sender=Product)
        def before(sender, instance, **kwargs):
            events.append(("pre", instance.id))

        @post_save.connect(sender=Product)
        async def after(sender, instance, created, **kwargs):
            events.append(("post", instance.id, created))

        product = await Product.create({"name": "signal"})
        await product.save()

        assert events == [
            ("pre", None),
            ("post", product.id, True),
            ("pre", product.id),
            ("post", product.id, False),
        ]

    @pytest.mark.asyncio
    async def test_pre_save_can_modify_instance(self, db):
        @receiver(pre_save, sender=User)
        def normalise_email(sender, instance, **kwargs):
            if instance.email:
                instance.email = instance.email.lower()

        user = await User.create({"name": "Mixed", "email": "Mixed@Example.COM"})

        fresh = await User.find(user.id)
        assert fresh.email == "mixed@example.com"

    @pytest.mark.asyncio
    async def test_delete_signals(self, db):
        events = []
        product = await Product.create({"name": "doomed"})

        pre_delete.connect(lambda sender, instance, **kw: events.append(("pre", instance.id)))
        post_delete.connect(lambda sender, instance, **kw: events.append(("post", instance.id)))

        await product.delete()

        assert events == [("pre", product.id), ("post", product.id)]

    @pytest.mark.asyncio
    async def test_no_signals_without_key(self, db):
        events = []
        pre_delete.connect(lambda sender, **kw: events.append(sender))

        await Product({"name": "unsaved"}).delete()

        assert events == []

    @pytest.mark.asyncio
    async def test_failing_receiver_does_not_block_save(self, db):
        @post_save.connect
        def broken(sender, **kwargs):
            raise RuntimeError("listener down")

        product = await Product.create({"name": "saved anyway"})
        assert await Product.find(product.id) is not None
