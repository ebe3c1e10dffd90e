"""Tests for the lazy-loading model registry."""

import threading
import time

import pytest

from config import settings
from services.pipeline import model_registry
from services.pipeline.errors import ModelLoadFailure
from services.pipeline.model_registry import RegistryState


class TestEnsureLoaded:
    def test_starts_idle(self):
        assert model_registry.get_registry().state is RegistryState.IDLE
        assert not model_registry.is_ready()

    def test_loads_all_three_once(self, fake_classifiers):
        assert model_registry.ensure_loaded() is RegistryState.READY
        assert fake_classifiers.built == [settings.q1_model, settings.q2i_model, settings.q3i_model]
        assert model_registry.is_ready()

    def test_repeated_calls_do_not_reload(self, fake_classifiers):
        for _ in range(5):
            model_registry.ensure_loaded()
        model_registry.preload()
        assert model_registry.get_registry().load_count == 1
        assert len(fake_classifiers.built) == 3

    def test_concurrent_first_calls_share_one_load(self, fake_classifiers):
        gate = threading.Event()
        original = model_registry.get_registry().factory

        def slow_factory(model_id):
            gate.wait(timeout=5)
            return original(model_id)

        model_registry.set_classifier_factory(slow_factory)
        threads = [threading.Thread(target=model_registry.ensure_loaded) for _ in range(8)]
        for t in threads:
            t.start()
        gate.set()
        for t in threads:
            t.join(timeout=10)

        assert model_registry.get_registry().load_count == 1
        assert len(fake_classifiers.built) == 3

    def test_concurrent_callers_share_a_failed_load(self, fake_classifiers):
        gate = threading.Event()
        attempts = []

        def failing_factory(model_id):
            attempts.append(model_id)
            gate.wait(timeout=5)
            raise OSError("hub unreachable")

        model_registry.set_classifier_factory(failing_factory)
        errors = []

        def call():
            try:
                model_registry.ensure_loaded()
            except ModelLoadFailure as e:
                errors.append(e)

        threads = [threading.Thread(target=call) for _ in range(8)]
        for t in threads:
            t.start()
        time.sleep(0.2)  # let every thread queue up behind the first load
        gate.set()
        for t in threads:
            t.join(timeout=10)

        assert model_registry.get_registry().load_count == 1
        assert attempts == [settings.q1_model]
        assert len(errors) == 8
        assert all(e.model_name == "q1" for e in errors)

        # a call made after the failure tries again
        model_registry.set_classifier_factory(fake_classifiers)
        assert model_registry.ensure_loaded() is RegistryState.READY
        assert model_registry.get_registry().load_count == 2

    def test_failure_is_retryable(self, fake_classifiers):
        fake_classifiers.fail_load = settings.q3i_model
        with pytest.raises(ModelLoadFailure) as exc_info:
            model_registry.ensure_loaded()
        assert exc_info.value.model_name == "q3i"
        assert model_registry.get_registry().state is RegistryState.IDLE

        fake_classifiers.fail_load = None
        assert model_registry.ensure_loaded() is RegistryState.READY
        assert model_registry.get_registry().load_count == 2
        # nothing from the failed attempt is reused
        assert fake_classifiers.built.count(settings.q1_model) == 2


class TestGetModel:
    def test_returns_loaded_service(self):
        svc = model_registry.get_model("q2i")
        assert svc.is_loaded
        assert svc.model_name == "q2i"
        ranked = svc.predict("Needs to read more around the topic")
        assert ranked[0].label == "LABEL_0"

    def test_unknown_model(self):
        with pytest.raises(ValueError):
            model_registry.get_model("q4")

    def test_clear_resets(self, fake_classifiers):
        model_registry.ensure_loaded()
        model_registry.clear()
        assert model_registry.get_registry().state is RegistryState.IDLE
        assert model_registry.get_registry().load_count == 0
