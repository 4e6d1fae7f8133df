"""
:mod:`stackcache.core.builder` --- Building a project
=====================================================

:class:`ProjectBuilder` drives one project build::

    plan  ->  for each software, in order:
                  fetch and verify  ->  extract  ->  run build steps
          ->  package

Everything is sequential and the first failure stops the build; a
planning error stops it before anything is fetched.

Build steps are shell command strings, run one at a time by
:class:`StepRunner` in the directory the sources were extracted to.
Their output goes to the ``package`` logger of the software at DEBUG
level, and to ``<build_dir>/<name>-<version>.log``. The environment of a
step has ``STK_BUILD_DIR``, ``STK_SOURCE_DIR`` and, when the project
declares an ``install_path``, ``PREFIX`` set.

Packaging is not done here; pass a ``packager(project, specs)`` callable
to produce packages from the finished build.
"""

import os
import subprocess
from os.path import join as pjoin

from ..spec.planner import TaskPlanner
from ..util.logger_setup import getLogger, log_to_file
from .fetcher import create_fetcher
from .fileutils import silent_makedirs


class BuildFailedError(Exception):
    def __init__(self, msg, software, command=None):
        Exception.__init__(self, msg)
        self.software = software
        self.command = command


class StepRunner(object):
    """
    Runs build steps through the shell, logging their output
    """
    def __init__(self, logger=None):
        self.logger = logger

    def run(self, spec, command, cwd, env):
        logger = self.logger or getLogger('package', spec.name)
        logger.info('Running: %s' % command)
        try:
            proc = subprocess.Popen(command, shell=True, cwd=cwd, env=env,
                                    stdin=subprocess.DEVNULL,
                                    stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                                    universal_newlines=True, errors='replace')
        except OSError as e:
            raise BuildFailedError('%s: could not run "%s": %s' % (spec.name, command, e),
                                   spec, command)
        with proc.stdout:
            for line in proc.stdout:
                logger.debug(line.rstrip('\n'))
        retcode = proc.wait()
        if retcode != 0:
            logger.error('Command "%s" failed with code %d' % (command, retcode))
            raise BuildFailedError('%s: build step "%s" failed with code %d' %
                                   (spec.name, command, retcode), spec, command)


class ProjectBuilder(object):
    """
    Builds the projects of `registry`

    Parameters
    ----------
    config : :class:`~stackcache.formats.config.ProcessConfig`

    registry : :class:`~stackcache.spec.software.Registry`

    logger : Logger

    runner : :class:`StepRunner` (optional)

    packager : callable (optional)
        ``packager(project, specs)`` is called with the project and the
        built software, in build order, once everything is built
    """
    def __init__(self, config, registry, logger, runner=None, packager=None,
                 fetcher_factory=create_fetcher):
        self.config = config
        self.registry = registry
        self.logger = logger
        self.runner = runner if runner is not None else StepRunner()
        self.packager = packager
        self.fetcher_factory = fetcher_factory

    def plan(self, project_name):
        project = self.registry.project(project_name)
        return TaskPlanner(self.registry, self.logger).plan(project)

    def step_env(self, project, source_dir):
        env = dict(os.environ)
        env['STK_BUILD_DIR'] = self.config.build_dir
        env['STK_SOURCE_DIR'] = source_dir
        if project.install_path:
            env['PREFIX'] = project.install_path
        return env

    def prepare_sources(self, spec):
        """Fetches and extracts `spec`; returns the directory to build in"""
        build_dir = self.config.build_dir
        if spec.source is None:
            source_dir = pjoin(build_dir, spec.relative_path or str(spec))
            silent_makedirs(source_dir)
            return source_dir
        fetcher = self.fetcher_factory(spec, self.config, self.logger)
        local_path = fetcher.fetch_and_verify(spec)
        source_dir = fetcher.extract(spec, local_path, build_dir)
        if not os.path.isdir(source_dir):
            raise BuildFailedError('%s: sources not found in %s after extraction; check relative_path'
                                   % (spec.name, source_dir), spec)
        return source_dir

    def build_software(self, project, spec):
        source_dir = self.prepare_sources(spec)
        if not spec.build_steps:
            self.logger.info('%s has no build steps' % spec.name)
            return
        env = self.step_env(project, source_dir)
        log_filename = pjoin(self.config.build_dir, '%s.log' % spec)
        self.logger.info('Building %s, follow log with:' % spec)
        self.logger.info('  tail -f %s' % log_filename)
        with log_to_file('package', log_filename):
            for command in spec.build_steps:
                self.runner.run(spec, command, source_dir, env)

    def build(self, project_name):
        """
        Builds `project_name` and returns its software in build order

        Raises
        ------
        UnknownDependencyError, CyclicDependencyError
            Before anything is fetched
        SourceUnavailableError, ChecksumMismatchError
            Fetching a software failed
        BuildFailedError
            A build step failed
        """
        project = self.registry.project(project_name)
        order = self.plan(project_name)
        silent_makedirs(self.config.build_dir)
        for spec in order:
            self.build_software(project, spec)
        if self.packager is None:
            self.logger.info('No packager configured, packaging of %s skipped' % project.name)
        else:
            self.packager(project, order)
        self.logger.info('Built %s' % project.name)
        return order
