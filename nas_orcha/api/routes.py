"""
API routes for the NAS App Orchestrator.

This module provides the REST API endpoints for managed applications,
bundles and their tasks.
"""

from flask import Flask, request, jsonify

from nas_orcha.config import OrchestratorConfig, load_config
from nas_orcha.core.orchestrator import AppOrchestrator, DEFAULT_TASK_LIMIT
from nas_orcha.errors import OrchestratorError, ValidationError


app = Flask(__name__)

# Global instance
orchestrator = None

ACTOR_HEADER = 'X-Actor'


def initialize(config: OrchestratorConfig = None, config_path: str = None,
               instance: AppOrchestrator = None) -> AppOrchestrator:
    """Initialize the API with an orchestrator."""
    global orchestrator

    if instance is None:
        instance = AppOrchestrator(config or load_config(config_path))
    orchestrator = instance
    return orchestrator


def current_actor() -> str:
    return request.headers.get(ACTOR_HEADER, '').strip() or 'anonymous'


@app.errorhandler(OrchestratorError)
def handle_orchestrator_error(error: OrchestratorError):
    return jsonify(error.to_dict()), error.status_code


@app.route('/api/apps', methods=['GET'])
def list_apps():
    """List managed applications with their installation state."""
    return jsonify(orchestrator.list_apps())


@app.route('/api/apps/bundles', methods=['GET'])
def list_bundles():
    """List application bundles."""
    return jsonify(orchestrator.list_bundles())


@app.route('/api/apps/bundles/<bundle_id>/install', methods=['POST'])
def install_bundle(bundle_id):
    """Queue a bundle installation."""
    task = orchestrator.create_bundle_install_task(bundle_id=bundle_id, actor=current_actor())
    return jsonify(task.to_dict()), 202


@app.route('/api/apps/tasks', methods=['GET'])
def list_tasks():
    """List recent tasks, newest first."""
    limit = request.args.get('limit', DEFAULT_TASK_LIMIT, type=int)
    return jsonify([task.to_dict() for task in orchestrator.list_tasks(limit)])


@app.route('/api/apps/tasks/<int:task_id>', methods=['GET'])
def get_task(task_id):
    """Get task details by ID."""
    return jsonify(orchestrator.get_task(task_id).to_dict())


@app.route('/api/apps/tasks/<int:task_id>/logs', methods=['GET'])
def get_task_logs(task_id):
    """Get the log of a task."""
    return jsonify({'id': task_id, 'logs': orchestrator.get_task_logs(task_id)})


@app.route('/api/apps/tasks/<int:task_id>/retry', methods=['POST'])
def retry_task(task_id):
    """Retry a failed task as a new task."""
    task = orchestrator.retry_task(task_id, actor=current_actor())
    return jsonify(task.to_dict()), 202


@app.route('/api/apps/<app_id>/install', methods=['POST'])
def install_app(app_id):
    """Queue an application install."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    task = orchestrator.create_app_action_task(
        app_id=app_id,
        action='install',
        actor=current_actor(),
        options=data.get('options'),
    )
    return jsonify(task.to_dict()), 202


@app.route('/api/apps/<app_id>/<any(start, stop, restart):action>', methods=['POST'])
def control_app(app_id, action):
    """Queue a start, stop or restart."""
    task = orchestrator.create_app_action_task(app_id=app_id, action=action, actor=current_actor())
    return jsonify(task.to_dict()), 202


@app.route('/api/apps/<app_id>', methods=['DELETE'])
def uninstall_app(app_id):
    """Queue an uninstall; ``?removeData=1`` also deletes the data directory."""
    remove_data = request.args.get('removeData') == '1'
    task = orchestrator.create_app_action_task(
        app_id=app_id,
        action='uninstall',
        actor=current_actor(),
        options={'removeData': remove_data},
    )
    return jsonify(task.to_dict()), 202


@app.route('/api/audit', methods=['GET'])
def list_audit():
    """Recent audit records."""
    limit = request.args.get('limit', 200, type=int)
    return jsonify(orchestrator.list_audit(limit))


@app.route('/api/health', methods=['GET'])
def health():
    """Liveness of the API process."""
    return jsonify({'status': 'ok'})
