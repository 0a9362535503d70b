from live_trivia import db
import json
import time


class Quiz(db.Model):
    __tablename__ = 'quiz'
    id = db.Column(db.Integer, primary_key=True)
    title_en = db.Column(db.String(256), nullable=False)
    title_ar = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    questions = db.relationship(
        'Question', back_populates='quiz', order_by='Question.sort_order', lazy='dynamic'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'title_en': self.title_en,
            'title_ar': self.title_ar,
            'created_at': self.created_at,
        }


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    question_en = db.Column(db.Text, nullable=False)
    question_ar = db.Column(db.Text, nullable=False)
    options_json = db.Column('options', db.Text, nullable=False, default='[]')  # JSON list of {"en", "ar"}
    correct_index = db.Column(db.Integer, nullable=False, default=0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    quiz = db.relationship('Quiz', back_populates='questions')

    @property
    def options(self):
        return json.loads(self.options_json) if self.options_json else []

    @options.setter
    def options(self, value):
        self.options_json = json.dumps(list(value or []))

    def to_dict(self, include_answer=True):
        data = {
            'id': self.id,
            'quiz_id': self.quiz_id,
            'question_en': self.question_en,
            'question_ar': self.question_ar,
            'options': self.options,
            'sort_order': self.sort_order,
        }
        if include_answer:
            data['correct_index'] = self.correct_index
        return data


class RoundState(db.Model):
    """The single authoritative round record. Only the round controller writes it."""
    __tablename__ = 'round_state'
    SINGLETON_ID = 1
    STATUSES = ('idle', 'active', 'revealed', 'leaderboard')

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default='idle')
    question_id = db.Column(db.Integer, db.ForeignKey('question.id', name='fk_round_state_question_id'), nullable=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id', name='fk_round_state_quiz_id'), nullable=True)
    started_at = db.Column(db.Float, nullable=True)  # epoch seconds
    timer_sec = db.Column(db.Integer, nullable=False, default=20)
    # Unsigned 32-bit; BigInteger so postgres can hold values above 2**31
    shuffle_seed = db.Column(db.BigInteger, nullable=False, default=0)
    # Bumped on every write so observers can drop stale or repeated deliveries
    version = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            'id': self.id,
            'status': self.status,
            'question_id': self.question_id,
            'quiz_id': self.quiz_id,
            'started_at': self.started_at,
            'timer_sec': self.timer_sec,
            'shuffle_seed': self.shuffle_seed,
            'version': self.version,
        }


class Response(db.Model):
    __tablename__ = 'response'
    __table_args__ = (
        db.UniqueConstraint('question_id', 'player_name', name='uq_response_question_player'),
    )
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False, index=True)
    player_name = db.Column(db.String(64), nullable=False)
    selected_index = db.Column(db.Integer, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    response_time_ms = db.Column(db.Integer, nullable=False)
    # Round timer at the time of the answer; scoring is relative to it
    timer_sec = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.Float, nullable=False, default=time.time)

    def to_dict(self):
        return {
            'id': self.id,
            'question_id': self.question_id,
            'player_name': self.player_name,
            'selected_index': self.selected_index,
            'is_correct': self.is_correct,
            'response_time_ms': self.response_time_ms,
            'timer_sec': self.timer_sec,
        }
