import numpy as np
import pytest

from face_attributes.common.errors import NotLoadedError, PredictionError
from face_attributes.config import CALIBRATION_CONFIG
from face_attributes.pipeline.engine import AgeCalibration, InferenceEngine
from face_attributes.pipeline.models import AgeGenderPrediction, Gender
from face_attributes.pipeline.registry import ModelRegistry
from face_attributes.preprocessing.normalizer import ImageNormalizer


@pytest.fixture
def engine(ready_registry, tracker):
    return InferenceEngine(ready_registry, tracker=tracker, rng=np.random.default_rng(42))


@pytest.fixture
def image(tracker):
    return tracker.allocate(np.full((1, 224, 224, 3), 0.5, dtype=np.float32), name="input")


def _engine_for(make_model, tracker, age_output, gender_output):
    registry = ModelRegistry()
    registry.install(make_model(age_output), make_model(gender_output))
    return InferenceEngine(registry, tracker=tracker, rng=np.random.default_rng(0))


def test_predict_maps_raw_outputs(engine, image, tracker, age_model, gender_model):
    prediction = engine.predict(image)

    assert isinstance(prediction, AgeGenderPrediction)
    assert prediction.age == 55  # 0.3 * 100 + 25
    assert prediction.gender == Gender.MALE
    assert prediction.gender_confidence == pytest.approx(0.8)
    assert 0.75 <= prediction.age_confidence < 0.95

    # Both models see the same normalized input
    age_model.predict.assert_called_once()
    gender_model.predict.assert_called_once()
    (batch,), _ = gender_model.predict.call_args
    assert batch.shape == (1, 224, 224, 3)

    # Input and both outputs are released
    assert image.disposed
    assert tracker.num_tensors == 0
    assert tracker.num_allocations == 3


@pytest.mark.parametrize(
    "raw, expected_age",
    [(1.0, 100), (5.0, 100), (-0.25, 0), (-3.0, 0), (0.125, 38), (0.0, 25)],
)
def test_age_is_clamped_and_rounded(make_model, tracker, raw, expected_age):
    engine = _engine_for(make_model, tracker, [[raw]], [[0.5, 0.5]])
    prediction = engine.predict(tracker.zeros((1, 224, 224, 3)))
    assert prediction.age == expected_age


def test_female_wins_when_more_probable(make_model, tracker):
    engine = _engine_for(make_model, tracker, [[0.0]], [[0.1, 0.9]])
    prediction = engine.predict(tracker.zeros((1, 224, 224, 3)))
    assert prediction.gender == Gender.FEMALE
    assert prediction.gender_confidence == pytest.approx(0.9)


def test_tie_resolves_to_female(make_model, tracker):
    engine = _engine_for(make_model, tracker, [[0.0]], [[0.5, 0.5]])
    prediction = engine.predict(tracker.zeros((1, 224, 224, 3)))
    assert prediction.gender == Gender.FEMALE
    assert prediction.gender_confidence == pytest.approx(0.5)


def test_not_loaded_runs_no_forward_pass(tracker, image):
    engine = InferenceEngine(ModelRegistry(), tracker=tracker)
    with pytest.raises(NotLoadedError):
        engine.predict(image)
    assert image.disposed
    assert tracker.num_tensors == 0


def test_mid_inference_failure_leaks_nothing(make_model, tracker, image):
    """The age pass succeeds, the gender pass throws: every buffer is still released."""
    registry = ModelRegistry()
    age_model = make_model([[0.3]])
    registry.install(age_model, make_model(error=RuntimeError("out of memory")))
    engine = InferenceEngine(registry, tracker=tracker)

    with pytest.raises(PredictionError, match="out of memory") as excinfo:
        engine.predict(image)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    age_model.predict.assert_called_once()
    assert image.disposed
    assert tracker.num_tensors == 0
    assert tracker.num_allocations == 2  # input + age output


@pytest.mark.parametrize(
    "age_output, gender_output",
    [
        ([[0.1, 0.2]], [[0.5, 0.5]]),  # age head with two values
        ([[0.1]], [[0.2, 0.3, 0.5]]),  # three classes
        ([[np.nan]], [[0.5, 0.5]]),
        ([[0.1]], [[np.inf, 0.0]]),
    ],
)
def test_malformed_outputs_raise_prediction_error(make_model, tracker, age_output, gender_output):
    engine = _engine_for(make_model, tracker, age_output, gender_output)
    with pytest.raises(PredictionError):
        engine.predict(tracker.zeros((1, 224, 224, 3)))
    assert tracker.num_tensors == 0


def test_disposed_input_raises_prediction_error(engine, image):
    image.dispose()
    with pytest.raises(PredictionError):
        engine.predict(image)


def test_predict_image_normalizes_first(engine, tracker, make_image_bytes):
    prediction = engine.predict_image(make_image_bytes(400, 200), ImageNormalizer(tracker=tracker))
    assert prediction.age == 55
    assert tracker.num_tensors == 0


def test_calibration_is_configurable(make_model, tracker):
    calibration = AgeCalibration(
        age_scale=50.0, age_offset=10.0, confidence_baseline=0.6, confidence_jitter=0.0
    )
    registry = ModelRegistry()
    registry.install(make_model([[0.5]]), make_model([[0.7, 0.3]]))
    engine = InferenceEngine(registry, tracker=tracker, calibration=calibration)

    prediction = engine.predict(tracker.zeros((1, 224, 224, 3)))
    assert prediction.age == 35
    assert prediction.age_confidence == pytest.approx(0.6)


def test_calibration_from_config_matches_defaults():
    assert AgeCalibration.from_config(CALIBRATION_CONFIG) == AgeCalibration()


def test_age_confidence_stays_in_unit_range():
    calibration = AgeCalibration(confidence_baseline=0.95, confidence_jitter=0.2)
    rng = np.random.default_rng(7)
    values = [calibration.age_confidence(rng) for _ in range(200)]
    assert all(0.95 <= v <= 1.0 for v in values)


def test_prediction_to_dict_uses_wire_keys():
    prediction = AgeGenderPrediction(age=31, gender=Gender.FEMALE, age_confidence=0.8, gender_confidence=0.7)
    assert prediction.to_dict() == {
        "age": 31,
        "gender": "female",
        "ageConfidence": 0.8,
        "genderConfidence": 0.7,
    }
