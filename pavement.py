import os.path
import re

from paver.tasks import task, cmdopts
from paver.easy import sh


def tell(x):
    print()
    print(("-"*10)+ str(x) + ("-"*10))
    print()

@task
def build(quiet=True):
    """ Builds the idmx distribution, ready to be uploaded to pypi. """
    tell("Build dist")
    sh('python setup.py sdist', capture=quiet)

@task
@cmdopts([
    ('slow', 's', 'Also run the tests with full size parameters.')
])
def test(options):
    """ Run the idmx test suite with coverage. """
    tell("Run the tests")
    marks = '' if options.test.get('slow') else ' -m "not slow"'
    sh('py.test -v --cov=idmx --cov-report=term-missing%s idmx/*.py' % marks)

@task
def upload(quiet=False):
    """ Uploads the latest distribution to pypi. """

    lib = open(os.path.join("idmx", "__init__.py")).read()
    v = re.findall("VERSION.*=.*['\"](.*)['\"]", lib)[0]

    tell("upload dist %s" % v)
    sh('git tag -a v%s -m "Distribution versio v%s"' % (v, v))
    sh('python setup.py sdist upload', capture=quiet)
    tell('Remember to upload tags using "git push --tags"')

@task
def lint(quiet=False):
    """ Run the python linter on idmx. """
    tell("Run pylint on the library")
    sh('pylint idmx', capture=quiet)

@task
def wc(quiet=False):
    """ Count the idmx library code lines. """
    tell("Counting code lines")

    print("\nLibrary code:")
    sh('wc -l idmx/*.py', capture=quiet)

    print("\nAdministration code:")
    sh('wc -l pavement.py setup.py', capture=quiet)
