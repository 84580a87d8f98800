from flask import request, jsonify, send_file, current_app
from werkzeug.utils import secure_filename
import logging
import threading
import time
import uuid
from pathlib import Path
import numpy as np
from app.main import main_bp
from app.main.object_recognition.recognition import RecognitionTimeout
from app.main.object_recognition.recognition_visualizer import RecognitionVisualizer

logger = logging.getLogger(__name__)

# recognize() keeps per-call state on the recognizer
_recognizer_lock = threading.Lock()


def get_recognizer():
    return current_app.extensions['object_recognizer']


def parse_oriented_points(data):
    """(points, normals) arrays from request JSON, raises ValueError on bad shapes."""
    if 'points' not in data or 'normals' not in data:
        raise ValueError("'points' and 'normals' are required")
    points = np.asarray(data['points'], dtype=float)
    normals = np.asarray(data['normals'], dtype=float)
    if points.size == 0 and normals.size == 0:
        return points.reshape(0, 3), normals.reshape(0, 3)
    if points.ndim != 2 or points.shape[1] != 3:
        raise ValueError(f"'points' must be a list of [x, y, z], got shape {points.shape}")
    if normals.shape != points.shape:
        raise ValueError(f"'normals' shape {normals.shape} does not match 'points' shape {points.shape}")
    return points, normals


def model_info(model):
    return {
        'name': model.name,
        'num_leaves': model.num_leaves,
        'num_pairs': model.num_pairs,
        'centroid': model.centroid.tolist(),
        'user_data': model.user_data,
    }


@main_bp.route('/health')
def health():
    return jsonify({'status': 'ok', 'models': sorted(get_recognizer().models)})


@main_bp.route('/models', methods=['GET'])
def list_models():
    models = get_recognizer().models
    return jsonify({'models': [model_info(models[name]) for name in sorted(models)]})


@main_bp.route('/models', methods=['POST'])
def add_model():
    """Register a model from {name, points, normals, user_data}."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Expected a JSON object'}), 400

    name = data.get('name')
    if not isinstance(name, str) or not name:
        return jsonify({'error': "'name' must be a non-empty string"}), 400

    try:
        points, normals = parse_oriented_points(data)
        with _recognizer_lock:
            added = get_recognizer().add_model(name, points, normals, data.get('user_data'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    if not added:
        return jsonify({'error': f"Model '{name}' already exists"}), 409

    model = get_recognizer().models[name]
    return jsonify({'success': True, 'model': model_info(model)}), 201


@main_bp.route('/models/<name>', methods=['DELETE'])
def delete_model(name):
    with _recognizer_lock:
        removed = get_recognizer().remove_model(name)
    if not removed:
        return jsonify({'error': f"Unknown model '{name}'"}), 404
    return jsonify({'success': True, 'name': name})


@main_bp.route('/recognize', methods=['POST'])
def recognize():
    """
    Recognize registered models in a scene.

    JSON body: {points, normals, success_probability=0.99, seed=None,
                timeout=None (seconds), render=false}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Expected a JSON object'}), 400

    try:
        points, normals = parse_oriented_points(data)
        success_probability = float(data.get('success_probability', 0.99))
        seed = data.get('seed')
        if seed is not None:
            seed = int(seed)
        timeout = data.get('timeout')
        deadline = None if timeout is None else time.monotonic() + float(timeout)
    except (TypeError, ValueError) as e:
        return jsonify({'error': str(e)}), 400

    recognizer = get_recognizer()
    try:
        with _recognizer_lock:
            objects = recognizer.recognize(points, normals, success_probability, rng=seed, deadline=deadline)
            report = recognizer.last_report.to_dict()
            projection = recognizer.scene_projection
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except RecognitionTimeout as e:
        return jsonify({'error': str(e)}), 503

    image = None
    if data.get('render') and projection is not None:
        visualizer = RecognitionVisualizer(output_dir=current_app.config['OUTPUT_FOLDER'])
        image = f"recognition_{uuid.uuid4().hex[:12]}.png"
        visualizer.save(visualizer.render(projection, objects), image)

    return jsonify({
        'success': True,
        'objects': [obj.to_dict() for obj in objects],
        'report': report,
        'image': image,
    })


@main_bp.route('/output/<path:filename>')
def get_output_image(filename):
    """Serve rendered images."""
    filepath = Path(current_app.config['OUTPUT_FOLDER']) / secure_filename(filename)

    if filepath.is_file():
        return send_file(str(filepath))

    return jsonify({'error': 'Image not found'}), 404
