"""
Unit tests for DefaultSocketImpl (handle ownership, bind/connect/accept, close).
"""

import gc
import threading
import time
import warnings

import pytest

from netstream import (
    AlreadyBoundError,
    ConnectError,
    ConnectTimeoutError,
    Endpoint,
    InetAddress,
    InvalidArgumentError,
    SocketClosedError,
    SocketConfig,
    SocketError,
)
from netstream.core.socket_impl import DefaultSocketImpl, SocketImpl
from netstream.core.transport import ensure_initialized

from conftest import LOOPBACK, BlockingRecvTransport, FakeTransport


REMOTE = Endpoint(InetAddress(0x0A000005), 9000)


@pytest.fixture
def impl(fake_transport):
    impl = DefaultSocketImpl(fake_transport)
    impl.create()
    yield impl
    if not impl.closed:
        impl.close()


class TestCreate:
    """Tests for handle allocation and one-time initialization."""

    def test_constructor_allocates_nothing(self, fake_transport):
        DefaultSocketImpl(fake_transport)
        assert fake_transport.total_calls == 0

    def test_create_is_idempotent(self, fake_transport):
        impl = DefaultSocketImpl(fake_transport)
        impl.create()
        impl.create()

        assert fake_transport.calls["create"] == 1
        assert impl.has_handle

    def test_init_runs_once_per_transport(self, fake_transport):
        for _ in range(3):
            DefaultSocketImpl(fake_transport).create()
        ensure_initialized(fake_transport)

        assert fake_transport.calls["init"] == 1
        assert fake_transport.calls["create"] == 3

    def test_init_runs_before_first_create(self):
        order = []

        class OrderedTransport(FakeTransport):
            def init(self):
                order.append("init")

            def create(self):
                order.append("create")
                return super().create()

        DefaultSocketImpl(OrderedTransport()).create()
        assert order == ["init", "create"]

    def test_is_a_socket_impl(self, impl):
        assert isinstance(impl, SocketImpl)
        assert not impl.supports_urgent_data()
        with pytest.raises(NotImplementedError):
            impl.send_urgent_data(1)


class TestConnect:
    """Tests for connect and the populate-once local endpoint."""

    def test_connect_records_both_endpoints(self, fake_transport, impl):
        impl.connect(REMOTE)

        assert impl.remote == REMOTE
        assert impl.local is not None
        assert impl.local.address == InetAddress(LOOPBACK)
        assert fake_transport.calls["connect"] == 1

    def test_connect_keeps_explicit_binding(self, fake_transport, impl):
        """A local endpoint set by bind() is not overwritten by connect()."""
        bound = Endpoint(InetAddress(LOOPBACK), 5555)
        impl.bind(bound)
        fake_transport.local[impl._handle] = (LOOPBACK, 1)  # transport would report something else

        impl.connect(REMOTE)

        assert impl.local == bound

    def test_connect_none_rejected_without_transport_call(self, fake_transport, impl):
        calls = fake_transport.total_calls
        with pytest.raises(InvalidArgumentError):
            impl.connect(None)
        assert fake_transport.total_calls == calls

    def test_connect_rejects_unsupported_endpoint(self, impl):
        with pytest.raises(InvalidArgumentError):
            impl.connect(("10.0.0.5", 9000))

    def test_negative_timeout_rejected_without_transport_call(self, fake_transport, impl):
        calls = fake_transport.total_calls
        with pytest.raises(InvalidArgumentError):
            impl.connect(REMOTE, -1)
        assert fake_transport.total_calls == calls

    def test_timed_connect_uses_timeout_path(self, fake_transport, impl):
        impl.connect(REMOTE, 2.5)

        assert fake_transport.calls["connect_with_timeout"] == 1
        assert fake_transport.calls["connect"] == 0

    def test_timeout_is_distinct_error(self, fake_transport, impl):
        """A connect that outlives its deadline raises ConnectTimeoutError."""
        fake_transport.connect_delay = 10.0

        with pytest.raises(ConnectTimeoutError) as exc_info:
            impl.connect(REMOTE, 0.5)

        assert isinstance(exc_info.value, TimeoutError)
        assert not isinstance(exc_info.value, ConnectError)
        assert impl.remote is None

    def test_connect_failure_leaves_remote_unset(self, fake_transport, impl):
        fake_transport.connect_error = ConnectError("refused")

        with pytest.raises(ConnectError):
            impl.connect(REMOTE)
        assert impl.remote is None

    def test_connect_without_handle_fails(self, fake_transport):
        with pytest.raises(SocketError):
            DefaultSocketImpl(fake_transport).connect(REMOTE)


class TestBind:
    """Tests for bind."""

    def test_bind_endpoint(self, fake_transport, impl):
        endpoint = Endpoint(InetAddress(LOOPBACK), 6000)
        impl.bind(endpoint)

        assert impl.local == endpoint
        assert fake_transport.calls["bind"] == 1

    def test_bind_none_binds_any(self, fake_transport, impl):
        impl.bind(None)

        assert fake_transport.calls["bind_any"] == 1
        assert impl.local.address.is_any
        assert impl.local.port > 0

    def test_bind_port_zero_records_assigned_port(self, fake_transport, impl):
        impl.bind(Endpoint(InetAddress(LOOPBACK), 0))
        assert impl.local.port == fake_transport.get_local_port(impl._handle)
        assert impl.local.port != 0

    def test_second_bind_fails(self, fake_transport, impl):
        first = Endpoint(InetAddress(LOOPBACK), 6000)
        impl.bind(first)

        with pytest.raises(AlreadyBoundError):
            impl.bind(Endpoint(InetAddress(LOOPBACK), 6001))

        assert impl.local == first
        assert fake_transport.calls["bind"] == 1

    def test_bind_after_connect_fails(self, impl):
        impl.connect(REMOTE)
        with pytest.raises(AlreadyBoundError):
            impl.bind(None)

    def test_bind_rejects_unsupported_endpoint(self, impl):
        with pytest.raises(InvalidArgumentError):
            impl.bind("127.0.0.1:80")


class TestAccept:
    """Tests for accept into a fresh target impl."""

    def test_accept_installs_new_handle(self, fake_transport, impl):
        impl.bind(Endpoint(InetAddress(LOOPBACK), 7000))
        impl.listen(5)
        fake_transport.queue_connection(0x0A000009, 51000)

        target = DefaultSocketImpl(fake_transport)
        impl.accept(target)

        assert target.has_handle
        assert target.remote == Endpoint(InetAddress(0x0A000009), 51000)
        assert target.local == Endpoint(InetAddress(LOOPBACK), 7000)
        assert fake_transport.calls["create"] == 2  # listener + accepted
        assert not impl.closed

    def test_accepted_streams_use_new_handle(self, fake_transport, impl):
        impl.bind(None)
        fake_transport.queue_connection(LOOPBACK, 51000)
        target = DefaultSocketImpl(fake_transport)
        impl.accept(target)

        target.output_stream.write(b"hi")
        assert bytes(fake_transport.sent[target._handle]) == b"hi"

    def test_accept_into_target_with_handle_rejected(self, fake_transport, impl):
        target = DefaultSocketImpl(fake_transport)
        target.create()

        with pytest.raises(InvalidArgumentError):
            impl.accept(target)
        assert fake_transport.calls["accept"] == 0

    def test_accept_rejects_foreign_impl(self, impl):
        class OtherImpl(SocketImpl):
            create = connect = bind = listen = accept = close = lambda *a: None
            input_stream = output_stream = closed = None

        with pytest.raises(InvalidArgumentError):
            impl.accept(OtherImpl())


class TestClose:
    """Tests for close ordering and idempotence."""

    def test_close_releases_streams_then_handle(self, fake_transport, impl):
        impl.close()

        assert fake_transport.calls["shutdown_read"] == 1
        assert fake_transport.calls["shutdown_write"] == 1
        assert fake_transport.calls["close"] == 1
        assert impl.input_stream.closed
        assert impl.output_stream.closed

    def test_close_twice_releases_once(self, fake_transport, impl):
        impl.close()
        impl.close()

        assert fake_transport.calls["close"] == 1
        assert fake_transport.calls["shutdown_read"] == 1

    def test_close_after_half_close(self, fake_transport, impl):
        impl.shutdown_output()
        impl.close()

        assert fake_transport.calls["shutdown_write"] == 1
        assert fake_transport.calls["shutdown_read"] == 1
        assert fake_transport.calls["close"] == 1

    def test_handle_released_even_if_shutdown_fails(self, fake_transport, impl):
        def failing(handle):
            raise SocketError("not connected")

        fake_transport.shutdown_read = failing

        with pytest.raises(SocketError):
            impl.close()
        assert fake_transport.calls["close"] == 1
        assert impl.output_stream.closed

    def test_close_without_handle(self, fake_transport):
        impl = DefaultSocketImpl(fake_transport)
        impl.close()
        assert fake_transport.total_calls == 0

    def test_operations_after_close_fail(self, impl):
        impl.close()

        with pytest.raises(SocketClosedError):
            impl.connect(REMOTE)
        with pytest.raises(SocketClosedError):
            impl.bind(None)
        with pytest.raises(SocketClosedError):
            impl.listen(1)
        with pytest.raises(SocketClosedError):
            impl.create()
        with pytest.raises(SocketClosedError):
            impl.shutdown_input()

    def test_half_close_is_independent(self, fake_transport, impl):
        impl.shutdown_input()

        assert impl.input_stream.closed
        assert not impl.output_stream.closed
        assert fake_transport.calls["close"] == 0

    def test_finalizer_releases_unclosed_handle(self):
        transport = FakeTransport()
        impl = DefaultSocketImpl(transport, SocketConfig(warn_unclosed=True))
        impl.create()

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            del impl
            gc.collect()

        assert transport.calls["close"] == 1
        assert any(issubclass(w.category, ResourceWarning) for w in caught)

    def test_finalizer_quiet_after_close(self, fake_transport):
        impl = DefaultSocketImpl(fake_transport)
        impl.create()
        impl.close()

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            del impl
            gc.collect()

        assert fake_transport.calls["close"] == 1
        assert not any(issubclass(w.category, ResourceWarning) for w in caught)

    def test_concurrent_close_releases_handle_once(self, fake_transport, impl):
        """Many threads closing at once: one teardown, one handle release."""
        barrier = threading.Barrier(8)

        def closer():
            barrier.wait()
            impl.close()

        threads = [threading.Thread(target=closer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert fake_transport.calls["close"] == 1
        assert fake_transport.calls["shutdown_read"] == 1
        assert fake_transport.calls["shutdown_write"] == 1
        assert impl.closed

    def test_close_from_other_thread_releases_blocked_read(self):
        transport = BlockingRecvTransport()
        impl = DefaultSocketImpl(transport)
        impl.create()
        impl.connect(REMOTE)
        result = {}

        def reader():
            try:
                result["value"] = impl.input_stream.read(10)
            except SocketError as e:
                result["error"] = e

        thread = threading.Thread(target=reader)
        thread.start()
        assert transport.reading.wait(timeout=5)

        impl.close()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert isinstance(result.get("error"), SocketClosedError)
        assert transport.calls["close"] == 1


class TestConcurrentBind:
    """Tests for bind() racing against itself."""

    def test_only_one_bind_wins(self):
        class SlowBindTransport(FakeTransport):
            def bind(self, handle, addr, port):
                time.sleep(0.01)
                super().bind(handle, addr, port)

        transport = SlowBindTransport()
        impl = DefaultSocketImpl(transport)
        impl.create()
        barrier = threading.Barrier(4)
        outcomes = []

        def binder(port):
            barrier.wait()
            try:
                impl.bind(Endpoint(InetAddress(LOOPBACK), port))
                outcomes.append("bound")
            except AlreadyBoundError:
                outcomes.append("already")

        threads = [threading.Thread(target=binder, args=(6000 + i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["already", "already", "already", "bound"]
        assert transport.calls["bind"] == 1
        impl.close()


class TestConfigValidation:
    """Tests for configuration checks at construction."""

    def test_config_mutated_after_construction_rejected(self, fake_transport):
        config = SocketConfig()
        config.transfer_unit = 0

        with pytest.raises(InvalidArgumentError):
            DefaultSocketImpl(fake_transport, config)
        assert fake_transport.total_calls == 0
