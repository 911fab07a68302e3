from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.models.game import RankedGame

# app/services/ranking_view.py -> app/services -> app
templates_dir = Path(__file__).resolve().parent.parent / "templates"

jinja_env = Environment(loader=FileSystemLoader(str(templates_dir)), autoescape=select_autoescape(["html"]))


def render_ranking(games: list[RankedGame]) -> str:
    """Render the ranking grid pushed to subscribers on completion."""
    template = jinja_env.get_template("ranking_partial.html")
    return template.render(games=games)


def completion_payload(games: list[RankedGame]) -> dict:
    return {"html": render_ranking(games), "count": len(games)}
