from typing import Annotated

import typer

from keycheck.cli.cache import cache_app
from keycheck.cli.common import configure_logging
from keycheck.cli.scan import baseline_app, scan
from keycheck.cli.validate import diff, validate
from keycheck.cli.watch import watch

app = typer.Typer(
    name="keycheck",
    help="keycheck: track the automation keys of a Flutter app and gate CI on key drift.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output to stderr.")] = False,
) -> None:
    configure_logging(verbose)


app.command("scan")(scan)
app.command("validate")(validate)
app.command("diff")(diff)
app.add_typer(baseline_app, name="baseline")
app.add_typer(cache_app, name="cache")
app.command("watch")(watch)


def main() -> None:
    app()
