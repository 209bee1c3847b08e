import pytest

import db


@pytest.fixture
def database(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "surveydesk-test.db"))
    db.init_db()
    return db


@pytest.fixture
def client(database):
    from app import app

    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def feedback_survey():
    return {
        "title": "Customer Feedback",
        "pages": [
            {
                "name": "page1",
                "elements": [
                    {"type": "text", "name": "q1", "title": "Your name"},
                    {
                        "type": "checkbox",
                        "name": "colors",
                        "title": "Favourite colours",
                        "choices": [
                            {"value": "r", "text": "Red"},
                            {"value": "g", "text": "Green"},
                            "blue",
                        ],
                    },
                    {
                        "type": "paneldynamic",
                        "name": "kids",
                        "title": "Children",
                        "templateElements": [
                            {"type": "text", "name": "age", "title": "Age"},
                        ],
                    },
                ],
            },
            {
                "name": "page2",
                "elements": [
                    {
                        "type": "panel",
                        "name": "extra",
                        "elements": [
                            {"type": "boolean", "name": "agree", "title": "Do you agree?"},
                            {
                                "type": "matrix",
                                "name": "quality",
                                "title": "Quality",
                                "columns": [{"value": 1, "text": "Poor"}, {"value": 5, "text": "Great"}],
                                "rows": [{"value": "food", "text": "Food"}, "service"],
                            },
                        ],
                    },
                ],
            },
        ],
    }
