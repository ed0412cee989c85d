# The idmx version
VERSION = '0.1.0'


__all__ = ["dm", "inequality", "issuance", "keys", "pack", "params",
           "predicates", "primeencode", "showproof", "structure", "utils",
           "ve"]

def run_tests():
    # These are only needed in case we test
    import pytest
    import os.path
    import glob

    # List all idmx files in the directory
    idmx_dir = os.path.dirname(os.path.realpath(__file__))
    pyfiles = glob.glob(os.path.join(idmx_dir, '*.py'))

    # Run the test suite, skipping the full size parameter runs
    print("Directory: %s" % pyfiles)
    res = pytest.main(["-v", "-x", "-m", "not slow"] + pyfiles)
    print("Result: %s" % res)

    # Return exit result
    return res
