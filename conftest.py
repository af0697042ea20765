import pytest

from pwnyaa import Config, StateStore


TW_CHALLENGES_HTML = """
<html><body>
<ul class="challenges">
  <li class="challenge-entry" id="challenge-id-1">
    <div class="challenge-info"><div class="title"><p>
      <span class="tititle">Start</span><span class="score">100 pts</span>
    </p></div></div>
  </li>
  <li class="challenge-entry" id="challenge-id-2">
    <div class="challenge-info"><div class="title"><p>
      <span class="tititle">orw</span><span class="score">100 pts</span>
    </p></div></div>
  </li>
  <li class="challenge-entry" id="challenge-id-3">
    <div class="challenge-info"><div class="title"><p>
      <span class="tititle">calc</span><span class="score">200 pts</span>
    </p></div></div>
  </li>
  <li class="challenge-entry" id="challenge-id-x">
    <div class="challenge-info"><div class="title"><p>
      <span class="tititle">broken</span><span class="score">??? pts</span>
    </p></div></div>
  </li>
</ul>
</body></html>
"""

XYZ_CHALLENGES_HTML = """
<html><body><div class="row">
  <div class="col-lg-2">
    <a href="#" data-toggle="modal" data-target="#chalModal1">
      <div class="challenge"><i>Welcome</i><p>50</p></div>
    </a>
  </div>
  <div class="col-lg-2">
    <a href="#" data-toggle="modal" data-target="#chalModal2">
      <div class="challenge"><i>sub</i><p>50</p></div>
    </a>
  </div>
</div></body></html>
"""

TW_LOGIN_HTML = """
<html><body>
<form method="post" action="/user/login">
   <input type='hidden' name='csrfmiddlewaretoken' value='formtoken123' />
   <input name="username" /><input name="password" type="password" />
</form>
</body></html>
"""


def tw_profile_html(username="alice", solved=()):
    """Build a pwnable.tw profile page; ``solved`` holds (name, score, iso timestamp) rows."""
    fields = [
        ("Username", username),
        ("Country", "Japan"),
        ("Rank", "42"),
        ("Score", "1200"),
        ("Comment", "nyan"),
        ("Registered", "2020-04-01"),
    ]
    rows = "".join(
        f'<div class="row"><div class="col-md-2">{label}</div><div class="col-md-10">{value}</div></div>'
        for label, value in fields
    )
    entries = "".join(
        f'<li class="challenge-entry"><span class="tititle">{name}</span>'
        f'<span class="score">{score} pts</span><time datetime="{stamp}">{stamp}</time></li>'
        for name, score, stamp in solved
    )
    return (
        '<html><body><div class="container"><div class="col-md-8">'
        f'<div class="row"><div class="col-md-9">{rows}</div></div>'
        f'<ul class="solved">{entries}</ul>'
        "</div></div></body></html>"
    )


class FakeSlackClient:
    """Records Slack Web API calls made by the bot."""

    def __init__(self):
        self.messages = []
        self.reactions = []

    async def chat_postMessage(self, **kwargs):
        self.messages.append(kwargs)
        return {"ok": True, "ts": str(len(self.messages))}

    async def reactions_add(self, **kwargs):
        self.reactions.append(kwargs)
        return {"ok": True}

    @property
    def texts(self):
        return [m["text"] for m in self.messages]


class FakeAchievements:
    def __init__(self):
        self.unlocked = []

    async def unlock(self, slack_id, name):
        self.unlocked.append((slack_id, name))


@pytest.fixture
def slack_client():
    return FakeSlackClient()


@pytest.fixture
def fake_achievements():
    return FakeAchievements()


@pytest.fixture
def store(tmp_path):
    s = StateStore(str(tmp_path / "state.json"))
    s.load()
    return s


@pytest.fixture(autouse=True)
def quiet_config(monkeypatch):
    """Deterministic settings for every test."""
    monkeypatch.setattr(Config, "BOT_NAME", "pwnyaa")
    monkeypatch.setattr(Config, "BOT_ICON", ":pwn:")
    monkeypatch.setattr(Config, "CHANNEL_PWNABLE", "CPWN")
    monkeypatch.setattr(Config, "TIMEZONE", "Asia/Tokyo")
    monkeypatch.setattr(Config, "ALIAS_CASE_SENSITIVE", True)
    monkeypatch.setattr(Config, "FETCH_RETRIES", 0)
    monkeypatch.setattr(Config, "BACKOFF_BASE_SECS", 0.0)
    for var in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(var, raising=False)
