from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Clock used for round start times and answer latency
    from live_trivia.services.rounds.clock import SystemClock
    flask_app.extensions['round_clock'] = flask_app.config.get('ROUND_CLOCK') or SystemClock()

    # Hash the moderator password once; requests are checked against the hash
    moderator_password = flask_app.config.get('MODERATOR_PASSWORD')
    flask_app.extensions['moderator_password_hash'] = (
        bcrypt.generate_password_hash(moderator_password).decode('utf-8') if moderator_password else None
    )

    from live_trivia.main import main
    flask_app.register_blueprint(main)

    from live_trivia.api.rounds import rounds
    from live_trivia.api.quizzes import quizzes
    flask_app.register_blueprint(rounds, url_prefix='/api')
    flask_app.register_blueprint(quizzes, url_prefix='/api')

    # Register Socket.IO event handlers on the shared socketio instance
    from live_trivia.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from live_trivia.models import Quiz, Question, RoundState
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            quiz = Quiz(title_en='Sample quiz', title_ar='اختبار تجريبي')
            db.session.add(quiz)
            db.session.flush()
            question = Question(
                quiz_id=quiz.id,
                question_en='What is the capital of France?',
                question_ar='ما هي عاصمة فرنسا؟',
                correct_index=1,
                sort_order=0,
            )
            question.options = [
                {'en': 'Berlin', 'ar': 'برلين'},
                {'en': 'Paris', 'ar': 'باريس'},
                {'en': 'Madrid', 'ar': 'مدريد'},
                {'en': 'Rome', 'ar': 'روما'},
            ]
            db.session.add(question)
            db.session.add(RoundState(id=RoundState.SINGLETON_ID, status='idle'))
            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('clear-responses')
    @click.option('--quiz', 'quiz_id', type=int, default=None, help='Quiz whose responses are cleared.')
    @click.option('--all', 'clear_all', is_flag=True, help='Clear responses for every quiz.')
    def clear_responses_command(quiz_id, clear_all):
        """Deletes submitted responses for one quiz or for all quizzes."""
        from live_trivia.services.rounds.controller import controller
        with flask_app.app_context():
            if clear_all:
                report = controller.clear_all_responses()
                print(f'Cleared {len(report.cleared)} quiz(zes), {len(report.failed)} failed')
                for failed_id, message in report.failed.items():
                    print(f'  quiz {failed_id}: {message}')
                return
            if quiz_id is None:
                raise click.UsageError('Pass --quiz ID or --all')
            deleted = controller.clear_responses(quiz_id)
            print(f'Deleted {deleted} response(s) for quiz {quiz_id}')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(clear_responses_command)

    return flask_app
