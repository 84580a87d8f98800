from flask import Flask
import logging
import os
from pathlib import Path

from app.main.object_recognition.recognition import ObjectRecognizer, RecognitionConfig

# Used when create_app() gets no recognition config
DEFAULT_RECOGNITION_CONFIG = {
    'pair_width': 40.0,
    'voxel_size': 4.0,
}


def create_app(config=None):
    """
    Flask application factory.

    Args:
        config: Optional dict of Flask settings. RECOGNITION_CONFIG may be a
                RecognitionConfig or a dict accepted by RecognitionConfig.from_dict.
    """
    app = Flask(__name__)

    app.config['OUTPUT_FOLDER'] = str(Path(__file__).resolve().parent / 'static' / 'output')
    app.config['RECOGNITION_CONFIG'] = dict(DEFAULT_RECOGNITION_CONFIG)
    if config:
        app.config.update(config)

    recognition_config = app.config['RECOGNITION_CONFIG']
    if not isinstance(recognition_config, RecognitionConfig):
        recognition_config = RecognitionConfig.from_dict(dict(recognition_config))
        app.config['RECOGNITION_CONFIG'] = recognition_config

    # Create necessary directories
    os.makedirs(app.config['OUTPUT_FOLDER'], exist_ok=True)

    app.extensions['object_recognizer'] = ObjectRecognizer(recognition_config)
    logging.getLogger(__name__).info(
        "create_app: recognizer ready (pair_width=%.4g, voxel_size=%.4g)",
        recognition_config.pair_width, recognition_config.voxel_size,
    )

    # Register blueprints
    from app.main import main_bp
    app.register_blueprint(main_bp)

    return app
