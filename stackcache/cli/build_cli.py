"""Command-line tools for planning, fetching and building projects
"""

from .main import register_subcommand
from ..core import ProjectBuilder, create_fetcher
from ..spec import TaskPlanner


def _get_project(ctx, registry, name):
    try:
        return registry.project(name)
    except KeyError:
        ctx.error('Unknown project: %s (known: %s)' %
                  (name, ', '.join(p.name for p in registry.projects) or 'none'))


@register_subcommand
class Plan(object):
    """
    Prints the build order of a project

    Example::

        $ stk plan chef
        ruby 1.9.2-p290
        rubygems 1.8.10
        chef-gem 10.12.0

    Nothing is fetched or built; unknown dependencies and dependency
    cycles are reported.
    """

    @staticmethod
    def setup(ap):
        ap.add_argument('project', help='Name of the project')

    @staticmethod
    def run(ctx, args):
        registry = ctx.get_registry()
        project = _get_project(ctx, registry, args.project)
        for spec in TaskPlanner(registry, ctx.logger).plan(project):
            ctx.out_stream.write('%s %s\n' % (spec.name, spec.version))


@register_subcommand
class Fetch(object):
    """
    Fetches the sources of software to the local cache directory

    The checksum of each download is verified; a local copy that is
    already up to date is not fetched again.
    """

    @staticmethod
    def setup(ap):
        ap.add_argument('software', nargs='+', help='Names of the software to fetch')

    @staticmethod
    def run(ctx, args):
        config = ctx.get_config()
        registry = ctx.get_registry()
        for name in args.software:
            spec = registry.get(name)
            if spec is None:
                ctx.error('Unknown software: %s' % name)
            if spec.source is None:
                ctx.logger.warning('%s has no sources to fetch' % name)
                continue
            path = create_fetcher(spec, config, ctx.logger).fetch_and_verify(spec)
            ctx.out_stream.write('%s %s\n' % (name, path))


@register_subcommand
class Build(object):
    """
    Builds a project

    The software of the project is fetched, extracted and built one
    at a time, in build order (see ``stk plan``). The first failure
    stops the build.
    """

    @staticmethod
    def setup(ap):
        ap.add_argument('project', help='Name of the project')

    @staticmethod
    def run(ctx, args):
        config = ctx.get_config()
        registry = ctx.get_registry()
        _get_project(ctx, registry, args.project)
        builder = ProjectBuilder(config, registry, ctx.logger)
        order = builder.build(args.project)
        ctx.out_stream.write('Built %s: %s\n' % (args.project, ', '.join(spec.name for spec in order)))
