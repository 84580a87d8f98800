"""
Tests for the HTTP service (app/main/routes.py) via the Flask test client.

Test Groups:
- H1: health
- M1-M5: model registration endpoints
- R1-R4: recognition endpoint and rendered images
"""

import pytest
import numpy as np
from scipy.spatial.transform import Rotation

from app import create_app


def make_patch(half_size=12.0, spacing=0.5):
    """Curved, asymmetric height field patch with analytic normals"""
    xs = np.arange(-half_size, half_size + 1e-9, spacing)
    x, y = np.meshgrid(xs, xs, indexing="ij")
    x, y = x.ravel(), y.ravel()
    z = 3.0 * np.sin(x / 6.0) + 2.5 * np.cos(y / 5.0) + 0.02 * x * y
    fx = 0.5 * np.cos(x / 6.0) + 0.02 * y
    fy = -0.5 * np.sin(y / 5.0) + 0.02 * x
    normals = np.column_stack([-fx, -fy, np.ones_like(x)])
    normals /= np.linalg.norm(normals, axis=1, keepdims=True)
    return np.column_stack([x, y, z]), normals


# ========== Fixtures ==========

@pytest.fixture
def client(tmp_path):
    app = create_app({
        'TESTING': True,
        'OUTPUT_FOLDER': str(tmp_path),
        'RECOGNITION_CONFIG': {'pair_width': 10.0, 'voxel_size': 2.0, 'seed': 7, 'visibility': 0.5},
    })
    return app.test_client()


@pytest.fixture(scope="module")
def model_payload():
    points, normals = make_patch()
    return {
        'name': 'patch',
        'points': points.tolist(),
        'normals': normals.tolist(),
        'user_data': {'label': 'patch'},
    }


@pytest.fixture(scope="module")
def true_pose():
    rotation = Rotation.from_euler("zx", [35.0, 12.0], degrees=True).as_matrix()
    return rotation, np.array([20.0, -8.0, 6.0])


@pytest.fixture(scope="module")
def scene_payload(true_pose):
    rotation, translation = true_pose
    points, normals = make_patch()
    return {
        'points': (points @ rotation.T + translation).tolist(),
        'normals': (normals @ rotation.T).tolist(),
    }


# ========== Test Group H: health ==========

def test_H1_health(client):
    """H1: Health lists the registered models"""
    print("\nTest H1: Health...", end=" ")

    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok', 'models': []}

    print("✓")


# ========== Test Group M: models ==========

def test_M1_register_model(client, model_payload):
    """M1: POST /models registers and lists the model"""
    print("\nTest M1: Register Model...", end=" ")

    response = client.post('/models', json=model_payload)
    assert response.status_code == 201
    body = response.get_json()
    assert body['model']['name'] == 'patch'
    assert body['model']['num_pairs'] > 0

    listed = client.get('/models').get_json()['models']
    assert [m['name'] for m in listed] == ['patch']
    assert listed[0]['user_data'] == {'label': 'patch'}
    assert client.get('/health').get_json()['models'] == ['patch']

    print("✓")


def test_M2_duplicate_model(client, model_payload):
    """M2: Registering the same name twice is a conflict"""
    print("\nTest M2: Duplicate Model...", end=" ")

    assert client.post('/models', json=model_payload).status_code == 201
    response = client.post('/models', json=model_payload)
    assert response.status_code == 409
    assert 'error' in response.get_json()

    print("✓")


def test_M3_bad_model_payloads(client):
    """M3: Bad JSON, missing fields and bad shapes are rejected"""
    print("\nTest M3: Bad Payloads...", end=" ")

    assert client.post('/models', data='not json', content_type='text/plain').status_code == 400
    assert client.post('/models', json={'points': [[0, 0, 0]], 'normals': [[0, 0, 1]]}).status_code == 400
    assert client.post('/models', json={'name': 'a', 'points': [[0, 0, 0]]}).status_code == 400
    assert client.post('/models', json={
        'name': 'a', 'points': [[0, 0]], 'normals': [[0, 1]],
    }).status_code == 400
    assert client.post('/models', json={
        'name': 'a', 'points': [[0, 0, 0]], 'normals': [[0, 0, 1], [0, 0, 1]],
    }).status_code == 400

    print("✓")


def test_M4_empty_model(client):
    """M4: A model without usable points is rejected"""
    print("\nTest M4: Empty Model...", end=" ")

    response = client.post('/models', json={'name': 'empty', 'points': [], 'normals': []})
    assert response.status_code == 400
    assert client.get('/models').get_json()['models'] == []

    print("✓")


def test_M5_delete_model(client, model_payload):
    """M5: DELETE removes known models, 404 for unknown ones"""
    print("\nTest M5: Delete Model...", end=" ")

    client.post('/models', json=model_payload)
    assert client.delete('/models/patch').status_code == 200
    assert client.delete('/models/patch').status_code == 404
    assert client.get('/models').get_json()['models'] == []

    print("✓")


# ========== Test Group R: recognition ==========

def test_R1_recognize(client, model_payload, scene_payload, true_pose):
    """R1: The registered model is found in the scene at its known pose"""
    print("\nTest R1: Recognize...", end=" ")

    centroid = np.array(client.post('/models', json=model_payload).get_json()['model']['centroid'])
    response = client.post('/recognize', json=scene_payload)

    assert response.status_code == 200
    body = response.get_json()
    assert body['success']
    assert len(body['objects']) == 1

    obj = body['objects'][0]
    assert obj['model_name'] == 'patch'
    assert obj['user_data'] == {'label': 'patch'}
    assert obj['confidence'] > 0.5

    rotation = np.array(obj['rotation'])
    translation = np.array(obj['translation'])
    true_rotation, true_translation = true_pose
    cos_angle = (np.trace(rotation.T @ true_rotation) - 1.0) / 2.0
    assert np.degrees(np.arccos(np.clip(cos_angle, -1.0, 1.0))) < 15.0
    offset = rotation @ centroid + translation - (true_rotation @ centroid + true_translation)
    assert np.linalg.norm(offset) < 6.0
    assert body['report']['num_recognized'] == len(body['objects'])
    assert body['image'] is None

    print("✓")


def test_R2_render_and_serve(client, model_payload, scene_payload, tmp_path):
    """R2: render=true writes an image that /output serves"""
    print("\nTest R2: Render...", end=" ")

    client.post('/models', json=model_payload)
    response = client.post('/recognize', json=dict(scene_payload, render=True))

    image = response.get_json()['image']
    assert image is not None
    assert (tmp_path / image).is_file()

    served = client.get(f'/output/{image}')
    assert served.status_code == 200
    assert served.data[:4] == b'\x89PNG'
    assert client.get('/output/missing.png').status_code == 404

    print("✓")


def test_R3_bad_recognize_payloads(client, scene_payload):
    """R3: Bad input gives 400"""
    print("\nTest R3: Bad Recognize Payloads...", end=" ")

    assert client.post('/recognize', data='x', content_type='text/plain').status_code == 400
    assert client.post('/recognize', json={'points': [[0, 0, 0]]}).status_code == 400
    assert client.post('/recognize', json=dict(scene_payload, success_probability=-1)).status_code == 400
    assert client.post('/recognize', json=dict(scene_payload, seed='abc')).status_code == 400

    print("✓")


def test_R4_timeout(client, model_payload, scene_payload):
    """R4: A passed deadline gives 503"""
    print("\nTest R4: Timeout...", end=" ")

    client.post('/models', json=model_payload)
    response = client.post('/recognize', json=dict(scene_payload, timeout=-1.0))
    assert response.status_code == 503

    print("✓")
