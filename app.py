import logging
import os
from datetime import date, datetime

from flask import Flask, render_template, request, jsonify
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import UniqueConstraint
from sqlalchemy.exc import SQLAlchemyError

from streaks import (
    TOPICS,
    TOPIC_NAMES,
    CompletionRecord,
    celebration_due,
    classify_month,
    compute_streak,
    find_record,
    is_day_complete,
    upsert_topic,
)

app = Flask(__name__, static_folder="static", template_folder="templates")
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///habits.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-password-secret-key')
app.config['DEFAULT_USER_ID'] = os.environ.get('DEFAULT_USER_ID', 'local')
app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO').upper()

app.logger.setLevel(getattr(logging, app.config['LOG_LEVEL'], logging.INFO))

db = SQLAlchemy(app)


class DataUnavailable(Exception):
    """The completion store could not be read or written."""


class Completion(db.Model):
    __tablename__ = 'completion'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    date = db.Column(db.String(10), nullable=False)  # YYYY-MM-DD
    ai_knowledge = db.Column(db.Boolean, nullable=False, default=False)
    codebasics = db.Column(db.Boolean, nullable=False, default=False)
    trading = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    __table_args__ = (UniqueConstraint('user_id', 'date', name='uix_user_date'),)

    def to_record(self):
        return CompletionRecord.from_mapping({c.name: getattr(self, c.name) for c in self.__table__.columns})


with app.app_context():
    db.create_all()


def current_day():
    """Today's date on the host's local calendar."""
    return date.today()


def current_user_id():
    return request.headers.get('X-User-Id') or app.config['DEFAULT_USER_ID']


def list_completions(user_id):
    """All completion records for a user, in write order."""
    try:
        rows = Completion.query.filter_by(user_id=user_id).order_by(Completion.id).all()
    except SQLAlchemyError as e:
        db.session.rollback()
        app.logger.exception("Failed to load completions for %s", user_id)
        raise DataUnavailable(str(e)) from e
    return [row.to_record() for row in rows]


def upsert_completion(record, user_id):
    """Insert or update the row for (user_id, record.date). Last write wins."""
    try:
        row = Completion.query.filter_by(user_id=user_id, date=record.date).first()
        if row is None:
            row = Completion(user_id=user_id, date=record.date)
            db.session.add(row)
        for topic in TOPICS:
            setattr(row, topic, getattr(record, topic))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        app.logger.exception("Failed to save completion %s for %s", record.date, user_id)
        raise DataUnavailable(str(e)) from e
    return record


def build_calendar(records, year, month, today):
    cells = classify_month(records, year, month, today)
    return [
        {
            "day": cell.day,
            "date": cell.date,
            "status": cell.status.value,
            "topics": cell.record.topics() if cell.record else None,
        }
        for cell in cells.values()
    ]


def format_long_date(d):
    return f"{d.strftime('%A, %B')} {d.day}, {d.year}"


@app.errorhandler(DataUnavailable)
def data_unavailable(e):
    return jsonify({"ok": False, "error": "data_unavailable"}), 503


@app.route('/')
def index():
    today = current_day()
    records = list_completions(current_user_id())
    todays = find_record(records, today) or CompletionRecord(date=today.isoformat())

    return render_template(
        'index.html',
        today=today,
        today_label=format_long_date(today),
        month_label=today.strftime('%B %Y'),
        days=build_calendar(records, today.year, today.month, today),
        streak=compute_streak(records, today),
        topics=todays.topics(),
        topic_names=TOPIC_NAMES,
    )


@app.route('/today.json')
def today_json():
    today = current_day()
    records = list_completions(current_user_id())
    todays = find_record(records, today) or CompletionRecord(date=today.isoformat())

    return jsonify({
        "date": today.isoformat(),
        "label": format_long_date(today),
        "topics": todays.topics(),
        "all_complete": todays.is_complete,
        "streak": compute_streak(records, today),
    })


@app.route('/calendar.json')
def calendar_json():
    today = current_day()
    try:
        year = int(request.args.get('year', today.year))
        month = int(request.args.get('month', today.month))
        date(year, month, 1)
    except (TypeError, ValueError, OverflowError):
        return jsonify({"ok": False, "error": "invalid_month"}), 400

    records = list_completions(current_user_id())
    return jsonify({
        "year": year,
        "month": month,
        "label": date(year, month, 1).strftime('%B %Y'),
        "days": build_calendar(records, year, month, today),
        "streak": compute_streak(records, today),
    })


@app.route('/toggle', methods=['POST'])
def toggle():

    data = request.get_json(silent=True) or request.form
    today = current_day()
    try:
        topic = data.get('topic')
        d = date.fromisoformat(data['date']) if data.get('date') else today
    except (TypeError, ValueError, AttributeError):
        return jsonify({"ok": False, "error": "invalid_payload"}), 400
    if topic not in TOPICS:
        return jsonify({"ok": False, "error": "unknown_topic"}), 400
    if d > today:
        return jsonify({"ok": False, "error": "future_date"}), 400

    user_id = current_user_id()
    records = list_completions(user_id)
    before = is_day_complete(records, d)

    existing = find_record(records, d)
    if 'value' in data:
        value = str(data['value']).lower() in ('1', 'true', 'on', 'yes')
    else:
        value = not (existing is not None and getattr(existing, topic))

    record = find_record(upsert_topic(records, d, topic, value), d)
    upsert_completion(record, user_id)
    app.logger.info("%s set %s=%s on %s", user_id, topic, value, d.isoformat())

    # recompute from what the store holds now
    records = list_completions(user_id)
    saved = find_record(records, d)
    after = saved.is_complete

    payload = {
        "ok": True,
        "date": d.isoformat(),
        "topic": topic,
        "checked": getattr(saved, topic),
        "topics": saved.topics(),
        "all_complete": after,
        "streak": compute_streak(records, today),
        # the banner is about today only
        "celebrate": d == today and celebration_due(before, after),
    }
    if value and not (existing is not None and getattr(existing, topic)):
        when = "today" if d == today else f"on {format_long_date(d)}"
        payload["message"] = f"Congrats on completing {TOPIC_NAMES[topic]} {when}!"
    return jsonify(payload)


@app.route('/ping')
def ping():
    return "pong"

if __name__ == '__main__':
    app.run(debug=True, port=1002)
