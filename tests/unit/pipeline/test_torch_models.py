import numpy as np
import pytest
import torch
import torch.nn as nn

from face_attributes.pipeline.torch_models import (
    AgeNet,
    GenderNet,
    TorchAttributeModel,
    build_torch_model,
)


def test_age_net_outputs_one_value_per_image():
    model = AgeNet().eval()
    inputs = torch.rand(2, 3, 64, 64)
    assert model(inputs).shape == (2, 1)


def test_gender_net_outputs_probabilities():
    model = GenderNet().eval()
    probs = model(torch.rand(2, 3, 64, 64))

    assert probs.shape == (2, 2)
    assert torch.allclose(probs.sum(dim=1), torch.ones(2), atol=1e-5)
    assert torch.all(probs >= 0)


def test_feature_stack_matches_demo_architecture():
    """Three conv layers with 32, 64 and 128 filters, then a 128-unit dense layer."""
    model = AgeNet()
    convs = [m for m in model.features if isinstance(m, nn.Conv2d)]
    assert [c.out_channels for c in convs] == [32, 64, 128]
    assert all(c.kernel_size == (3, 3) for c in convs)

    linears = [m for m in model.head if isinstance(m, nn.Linear)]
    assert [(l.in_features, l.out_features) for l in linears] == [(128, 128), (128, 1)]


def test_handle_accepts_nhwc_numpy_batch():
    handle = TorchAttributeModel(GenderNet())
    batch = np.zeros((1, 224, 224, 3), dtype=np.float32)

    output = handle.predict(batch)

    assert isinstance(output, np.ndarray)
    assert output.shape == (1, 2)
    assert output.sum() == pytest.approx(1.0, abs=1e-5)


def test_handle_is_deterministic_in_eval_mode():
    """Dropout is disabled, so repeated passes agree."""
    handle = build_torch_model("age", seed=3)
    batch = np.random.rand(1, 224, 224, 3).astype(np.float32)
    assert np.array_equal(handle.predict(batch), handle.predict(batch))


def test_build_uses_seed_for_fresh_weights(tmp_path):
    missing = tmp_path / "missing.pt"
    a = build_torch_model("age", missing, seed=5)
    b = build_torch_model("age", missing, seed=5)
    c = build_torch_model("age", missing, seed=6)

    weight_a = a.module.features[0].weight
    assert torch.equal(weight_a, b.module.features[0].weight)
    assert not torch.equal(weight_a, c.module.features[0].weight)


def test_build_loads_checkpoint(tmp_path):
    source = GenderNet()
    checkpoint = tmp_path / "gender_net.pt"
    torch.save(source.state_dict(), checkpoint)

    handle = build_torch_model("gender", checkpoint, seed=99)

    assert torch.equal(handle.module.head[-1].weight, source.head[-1].weight)


def test_build_rejects_unknown_kind():
    with pytest.raises(ValueError, match="Unknown model kind"):
        build_torch_model("emotion")


def test_predict_after_dispose_raises():
    handle = TorchAttributeModel(AgeNet())
    handle.dispose()
    with pytest.raises(RuntimeError):
        handle.predict(np.zeros((1, 224, 224, 3), dtype=np.float32))
