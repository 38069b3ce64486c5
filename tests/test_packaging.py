import pathlib

import resourcepy


def test_setup_version():
    setup = (pathlib.Path(__file__).parent.parent / "setup.py").read_text()
    assert f'version = "{resourcepy.__version__}"' in setup
