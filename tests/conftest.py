import inspect

from _pytest.unittest import UnitTestCase
import pytest
from testscenarios import WithScenarios


@pytest.hookimpl(tryfirst=True)
def pytest_pycollect_makeitem(collector, name, obj):
    # testscenarios runs each scenario on a clone of the test case, which
    # pytest's unittest integration does not follow (setUp runs on the
    # clone, the test method on the original).  Collect one concrete
    # subclass per scenario instead, as ``unittest`` would expand them.
    if not (inspect.isclass(obj) and issubclass(obj, WithScenarios)):
        return None
    scenarios = getattr(obj, 'scenarios', None)
    if not scenarios:
        return None
    items = []
    for scenario_name, attrs in scenarios:
        cls_name = '{0}[{1}]'.format(name, scenario_name)
        namespace = dict(attrs)
        namespace['scenarios'] = None
        namespace['__module__'] = obj.__module__
        namespace['__qualname__'] = cls_name
        scenario_cls = type(cls_name, (obj,), namespace)
        item = UnitTestCase.from_parent(collector, name=cls_name,
                                        obj=scenario_cls)
        item._obj = scenario_cls
        items.append(item)
    return items
