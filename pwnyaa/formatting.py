from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

import pytz

from .config import Config
from .state import Contest, Profile, SolvedInfo


JOIN_USAGE = (
    "*join* コマンド: ある常設CTFに登録する\n"
    "  _join_  _<CTF name/alias>_  _<User ID>_"
)
CHECK_USAGE = (
    "*check* コマンド: あるCTFにおける自分のステータス確認\n"
    "  _check_  _<CTF name/alias>_"
)
LIST_USAGE = (
    "*list* コマンド: 登録されている常設CTFの一覧\n"
    "  _list_"
)
UNKNOWN_COMMAND = ":wakarazu:"
NO_CONTESTS = "まだコンテストが登録されてないよ。"
NOBODY_SOLVED_WEEKLY = "今週は誰も問題を解かなかったよ... :cry:"
ERROR_REPLY = "ごめん、エラーが起きちゃった... :cry:"


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def mention(slack_id: str) -> str:
    return f"<@{slack_id}>"


def fmt_timestamp(solved: SolvedInfo) -> str:
    tz = pytz.timezone(Config.TIMEZONE)
    return solved.solved_at.astimezone(tz).strftime("%Y-%m-%d %H:%M")


def fmt_help() -> str:
    return "\n".join([f"*{Config.BOT_NAME}* の使い方", LIST_USAGE, JOIN_USAGE, CHECK_USAGE])


def contest_summary(contest: Contest) -> str:
    text = f"*{_escape(contest.title)}* ({contest.url})\n"
    text += f"  問題数: {contest.num_challs}\n"
    if not contest.joining_users:
        text += "  参加者: なし\n"
    else:
        text += f"  参加者: {len(contest.joining_users)}匹\n"
        text += "   " + " ".join(u.slack_id for u in contest.joining_users) + "\n"
    return text


def contests_summary(contests: Sequence[Contest]) -> str:
    if not contests:
        return NO_CONTESTS
    return "".join(contest_summary(c) for c in contests)


def challs_summary(challs: Sequence[SolvedInfo], spaces: int = 0) -> str:
    lines = [f"{' ' * spaces}{_escape(c.name)}({c.score}) {fmt_timestamp(c)}" for c in challs]
    return "\n".join(lines)


def fmt_joined(profile: Profile) -> str:
    return (
        "登録したよ! :azaika:\n"
        f"  ユーザ名  : {_escape(profile.username)}\n"
        f"  スコア   : {_escape(profile.score)}\n"
        f"  ランキング: {_escape(profile.rank)}\n"
        f"  {_escape(profile.comment)}"
    )


def fmt_joined_unverified(contest: Contest, external_id: str) -> str:
    return (
        f"登録したよ! :azaika: (*{_escape(contest.title)}* はプロフィールを確認できないので "
        f"ユーザ *{_escape(external_id)}* をそのまま登録したよ)"
    )


def fmt_contest_not_found(name: str) -> str:
    return (
        f"コンテスト *{_escape(name)}* は見つからなかったよ...\n"
        "現在登録されてるコンテスト一覧を見てね!"
    )


def fmt_user_not_found(external_id: str, contest: Contest) -> str:
    return f"ユーザ *{_escape(external_id)}* は *{_escape(contest.title)}* に見つからなかったよ:cry:"


def fmt_not_joined(name: str) -> str:
    return f"まだ *{_escape(name)}* に参加してないよ。 *join* コマンドで参加登録してね!"


def fmt_profile_unavailable(contest: Contest) -> str:
    return f"*{_escape(contest.title)}* のプロフィールは取得できないよ... :cry:"


def fmt_check_notice(profile: Profile) -> str:
    return f"*{_escape(profile.username)}* の情報だよ！スレッドを見てね。"


def fmt_profile_details(profile: Profile) -> str:
    solved = challs_summary(profile.solved, spaces=2) or "  なし"
    return (
        f"ユーザ名  : {_escape(profile.username)}\n"
        f"スコア   : {_escape(profile.score)}\n"
        f"ランキング: {_escape(profile.rank)}\n"
        f"{_escape(profile.comment)}\n\n"
        f"解いた問題 ({len(profile.solved)}):\n"
        f"{solved}"
    )


def fmt_daily_digest(contest: Contest, solvers: List[Tuple[str, List[SolvedInfo]]]) -> str:
    lines = [f":pwn: *{_escape(contest.title)}* で昨日解かれた問題だよ!"]
    for slack_id, solved in solvers:
        lines.append(f"{mention(slack_id)} が {len(solved)}問 解いたよ!")
        lines.append(challs_summary(solved, spaces=2))
    return "\n".join(lines)


def fmt_weekly_ranking(rankings: Dict[str, List[Tuple[str, int]]]) -> str:
    """Format per-contest rankings; ``rankings`` maps contest title to sorted (slack_id, count) rows."""
    lines = [":trophy: *今週のpwnランキング* :trophy:"]
    for title, rows in rankings.items():
        if not rows:
            continue
        lines.append(f"*{_escape(title)}*")
        for position, (slack_id, count) in enumerate(rows, start=1):
            lines.append(f"  {position}位: {mention(slack_id)} ({count}問)")
    return "\n".join(lines)


def fmt_achievement(slack_id: str, name: str) -> str:
    return f":tada: {mention(slack_id)} が実績 *{_escape(name)}* を解除したよ!"
