"""CLI entry point for QuizDungeon."""

import logging

import click

from quizdungeon.config.settings import Settings


@click.group(invoke_without_command=True)
@click.option("--user", "user_id", default="player", show_default=True, help="Player id")
@click.option("--seed", type=int, default=None, help="Seed answer shuffling for reproducible encounters")
@click.pass_context
def main(ctx: click.Context, user_id: str, seed: int | None) -> None:
    """QuizDungeon — answer questions to fight your way through the dungeon."""
    settings = Settings.load()
    logging.basicConfig(level=settings.get_log_level(), format="%(levelname)s %(name)s: %(message)s")
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["user_id"] = user_id
    ctx.obj["seed"] = seed
    if ctx.invoked_subcommand is None:
        ctx.invoke(launch)


@main.command()
@click.pass_context
def launch(ctx: click.Context) -> None:
    """Launch the terminal arena."""
    from quizdungeon.app.main_app import QuizDungeonApp

    app = QuizDungeonApp(
        user_id=ctx.obj["user_id"],
        settings=ctx.obj["settings"],
        seed=ctx.obj["seed"],
    )
    app.run()


def _store(ctx: click.Context):
    from quizdungeon.state.store import GameStore

    return GameStore(db_path=ctx.obj["settings"].data_dir / "game.db")


@main.command()
@click.pass_context
def subjects(ctx: click.Context) -> None:
    """List question subjects."""
    for s in _store(ctx).subjects():
        click.echo(f"  {s.subject}: {s.name} ({s.question_count} questions)")


@main.command()
@click.option("--subject", default=None, help="Limit to one subject")
@click.pass_context
def stats(ctx: click.Context, subject: str | None) -> None:
    """Show per-subject ratings for the current user."""
    from quizdungeon.engine.rating import subject_statistics

    history = _store(ctx).history(ctx.obj["user_id"], subject)
    summary = subject_statistics(history)
    if not summary:
        click.echo("No answers recorded yet.")
        return
    for name, s in summary.items():
        click.echo(f"{name}: rating {s.average_rating}")
        for q in s.questions:
            click.echo(
                f"  #{q.question_id}: {q.correct} correct, {q.wrong} wrong, "
                f"{q.timeout} timed out (rating {q.rating:.1f})"
            )


@main.command()
@click.argument("xp", type=int, required=False)
@click.pass_context
def level(ctx: click.Context, xp: int | None) -> None:
    """Show level progress for XP (defaults to the user's total)."""
    from quizdungeon.engine.progression import level_info

    if xp is None:
        xp = _store(ctx).total_experience(ctx.obj["user_id"])
    info = level_info(xp)
    click.echo(
        f"Level {info.level}: {info.xp_into_level}/{info.xp_needed_for_next_level} XP "
        f"({info.progress_percent:.0f}%)"
    )


@main.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the JSON-lines server on stdin/stdout."""
    import asyncio

    from quizdungeon.server.__main__ import main as server_main

    asyncio.run(server_main(ctx.obj["settings"]))
