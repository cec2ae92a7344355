import click
from click_default_group import DefaultGroup

import accessfrost
from accessfrost.logger import set_verbosity


@click.group(
    cls=DefaultGroup,
    default="spec-test",
    invoke_without_command=True,
    no_args_is_help=True,
)
@click.option(
    "-v", "--verbose", help="Increases log level with count, e.g -vv", count=True
)
@click.version_option(version=accessfrost.__version__, prog_name="accessfrost")
@click.pass_context
def cli(ctx, verbose):
    set_verbosity(verbose)

    ctx.ensure_object(dict)
    ctx.obj["verbosity"] = verbose
