import random

from ..software import SoftwareSpec, ProjectSpec, Registry
from ..planner import TaskPlanner, plan, topological_sort
from ..exceptions import UnknownDependencyError, CyclicDependencyError
from ...util.logger_fixtures import log_capture
from ...core.test.utils import assert_raises


def software(name, *deps):
    return SoftwareSpec(name, '1.0', dependencies=deps)


def names(specs):
    return [spec.name for spec in specs]


def test_chef_stack():
    registry = Registry([software('ruby'),
                         software('rubygems', 'ruby'),
                         software('chef-gem', 'rubygems')])
    project = ProjectSpec('chef', ['chef-gem'])
    assert names(plan(project, registry)) == ['ruby', 'rubygems', 'chef-gem']


def test_shared_dependency_planned_once():
    registry = Registry([software('zlib'),
                         software('openssl', 'zlib'),
                         software('ruby', 'zlib', 'openssl'),
                         software('python', 'openssl', 'zlib')])
    project = ProjectSpec('stack', ['ruby', 'python'])
    assert names(plan(project, registry)) == ['zlib', 'openssl', 'ruby', 'python']


def test_declaration_order_of_siblings():
    registry = Registry([software('a'), software('b'), software('c'),
                         software('top', 'c', 'a', 'b')])
    assert names(plan(ProjectSpec('p', ['top']), registry)) == ['c', 'a', 'b', 'top']
    assert names(plan(ProjectSpec('p', ['b', 'top']), registry)) == ['b', 'c', 'a', 'top']


def test_only_closure_is_planned():
    registry = Registry([software('a'), software('b', 'a'), software('unrelated')])
    assert names(plan(ProjectSpec('p', ['b']), registry)) == ['a', 'b']


def check_order(order, registry, roots):
    position = dict((spec.name, i) for i, spec in enumerate(order))
    assert len(position) == len(order)
    for spec in order:
        for dep in spec.dependencies:
            assert position[dep] < position[spec.name]
    # closure, computed independently
    closure = set()
    stack = list(roots)
    while stack:
        name = stack.pop()
        if name not in closure:
            closure.add(name)
            stack.extend(registry.software(name).dependencies)
    assert set(position) == closure


def test_random_dags():
    rng = random.Random(1234)
    for trial in range(50):
        n = rng.randint(1, 25)
        specs = []
        for i in range(n):
            deps = rng.sample(range(i), rng.randint(0, min(i, 4)))
            specs.append(software('s%d' % i, *['s%d' % j for j in deps]))
        rng.shuffle(specs)
        registry = Registry(specs)
        roots = ['s%d' % i for i in rng.sample(range(n), rng.randint(1, n))]
        order = plan(ProjectSpec('p', roots), registry)
        check_order(order, registry, roots)
        # the same registry always gives the same plan
        assert plan(ProjectSpec('p', roots), registry) == order


def test_cycle():
    registry = Registry([software('a', 'b'), software('b', 'a')])
    with assert_raises(CyclicDependencyError) as e:
        plan(ProjectSpec('p', ['a']), registry)
    assert e.exc_val.cycle == ['a', 'b', 'a']
    assert 'a -> b -> a' in str(e.exc_val)


def test_cycle_below_acyclic_part():
    registry = Registry([software('top', 'lib'), software('lib', 'x'),
                         software('x', 'y'), software('y', 'z'), software('z', 'x')])
    with assert_raises(CyclicDependencyError) as e:
        plan(ProjectSpec('p', ['top']), registry)
    assert e.exc_val.cycle == ['x', 'y', 'z', 'x']


def test_unknown_dependency():
    registry = Registry([software('a', 'missing')])
    with assert_raises(UnknownDependencyError) as e:
        plan(ProjectSpec('p', ['a']), registry)
    assert e.exc_val.name == 'missing'
    assert e.exc_val.required_by == 'a'
    assert str(e.exc_val) == 'unknown dependency "missing" required by "a"'

    with assert_raises(UnknownDependencyError) as e:
        plan(ProjectSpec('p', ['nope']), registry)
    assert e.exc_val.required_by == 'p'


def test_planner_logs_order():
    registry = Registry([software('a'), software('b', 'a')])
    with log_capture() as log:
        TaskPlanner(registry, log).plan(ProjectSpec('p', ['b']))
    log.assertLogged('^INFO:Build order for p: a, b$')


def test_topological_sort_generic():
    graph = {1: [2, 3], 2: [3], 3: []}
    assert topological_sort([1], graph.__getitem__) == [3, 2, 1]
    with assert_raises(CyclicDependencyError) as e:
        topological_sort([1], {1: [2], 2: [1]}.__getitem__)
    assert e.exc_val.cycle == [1, 2, 1]
    assert str(e.exc_val) == 'dependency cycle between software: 1 -> 2 -> 1'
