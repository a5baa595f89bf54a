import os
import signal

from fbtunnel.signals import InterruptListener


class TestInterruptListener:

    def test_fire_runs_callbacks_in_order(self):
        calls = []
        listener = InterruptListener(handle_signals=False)
        listener.add_callback(lambda: calls.append("stop"))
        listener.add_callback(lambda: calls.append("unwind"))
        listener.start()

        assert not listener.fired
        listener.fire()

        assert listener.wait_handled(5)
        assert listener.fired
        assert calls == ["stop", "unwind"]

    def test_second_fire_is_ignored(self):
        calls = []
        listener = InterruptListener(handle_signals=False)
        listener.add_callback(lambda: calls.append(1))
        listener.start()

        listener.fire(signal.SIGINT)
        listener.fire(signal.SIGTERM)

        assert listener.wait_handled(5)
        assert calls == [1]
        assert listener.signum == signal.SIGINT

    def test_failing_callback_does_not_block_the_rest(self):
        calls = []

        def broken():
            raise RuntimeError("kill failed")

        listener = InterruptListener(handle_signals=False)
        listener.add_callback(broken)
        listener.add_callback(lambda: calls.append("after"))
        listener.start()
        listener.fire()

        assert listener.wait_handled(5)
        assert calls == ["after"]

    def test_wait_times_out_without_fire(self):
        listener = InterruptListener(handle_signals=False)
        assert listener.wait(0.05) is False
        assert listener.wait_handled(0.05) is False

    def test_real_signal(self):
        previous = signal.getsignal(signal.SIGTERM)
        listener = InterruptListener()
        listener.start()
        try:
            assert signal.getsignal(signal.SIGTERM) == listener._handle_signal
            os.kill(os.getpid(), signal.SIGTERM)
            assert listener.wait(5)
            assert listener.wait_handled(5)
            assert listener.signum == signal.SIGTERM
        finally:
            listener.close()

        assert signal.getsignal(signal.SIGTERM) == previous
