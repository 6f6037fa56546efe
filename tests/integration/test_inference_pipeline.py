import numpy as np

from face_attributes.config import default_config
from face_attributes.pipeline.factory import create_pipeline
from face_attributes.pipeline.loader import PollingObserver
from face_attributes.pipeline.models import Gender
from face_attributes.preprocessing.validation import ImageFormat, validate_upload


def test_end_to_end_with_torch_models(tmp_path, tracker, make_image_bytes):
    """
    Integration test for the full pipeline on freshly initialized torch models.
    Loads in the background, validates and normalizes a 400x200 JPEG, predicts.
    """
    # 1. Setup config (no checkpoints, so weights are seeded)
    config = default_config()
    config["model"]["AGE_CHECKPOINT_PATH"] = str(tmp_path / "age.pt")
    config["model"]["GENDER_CHECKPOINT_PATH"] = str(tmp_path / "gender.pt")
    pipeline = create_pipeline(config, tracker=tracker, rng=np.random.default_rng(0))

    # 2. Load with an observer polling on its own thread
    observer = PollingObserver(pipeline.loader, interval=0.005).start()
    pipeline.loader.start(background=True)
    state = pipeline.loader.wait(timeout=120)
    samples = observer.join(timeout=10)

    assert state.is_loaded
    progress = [s.progress for s in samples]
    assert progress == sorted(progress)
    assert progress[-1] == 100
    assert tracker.num_tensors == 0

    # 3. Validate and normalize
    data = make_image_bytes(400, 200)
    assert validate_upload(data, "image/jpeg") == ImageFormat.JPEG
    normalized = pipeline.normalizer.normalize(data)
    assert normalized.shape == (1, 224, 224, 3)
    assert np.all(normalized.data[0, :56] == 0.0)
    assert np.all(normalized.data[0, 168:] == 0.0)

    # 4. Predict
    prediction = pipeline.engine.predict(normalized)

    assert 0 <= prediction.age <= 100
    assert prediction.gender in (Gender.MALE, Gender.FEMALE)
    assert 0.0 <= prediction.age_confidence <= 1.0
    assert 0.0 <= prediction.gender_confidence <= 1.0
    assert prediction.gender_confidence >= 0.5
    assert tracker.num_tensors == 0

    pipeline.loader.dispose()
    assert not pipeline.registry.is_ready()


def test_seeded_models_give_repeatable_predictions(tmp_path, make_image_bytes):
    config = default_config()
    config["model"]["AGE_CHECKPOINT_PATH"] = str(tmp_path / "age.pt")
    config["model"]["GENDER_CHECKPOINT_PATH"] = str(tmp_path / "gender.pt")
    data = make_image_bytes(300, 500)

    results = []
    for _ in range(2):
        pipeline = create_pipeline(config, rng=np.random.default_rng(1))
        pipeline.loader.load(timeout=120)
        results.append(pipeline.engine.predict(pipeline.normalizer.normalize(data)))
        pipeline.loader.dispose()

    assert results[0] == results[1]
