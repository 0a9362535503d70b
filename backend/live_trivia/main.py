from flask import Blueprint, jsonify
from live_trivia.services.rounds.store import get_round_state

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the live trivia server!'})

@main.route('/health')
def health():
    state = get_round_state()
    return jsonify({'ok': True, 'round_status': state.status, 'version': state.version})
