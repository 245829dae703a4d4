import unittest
import doctest
import dkimparse
import dkimparse.canonicalization
from dkimparse.tests import test_suite

doctest.testmod(dkimparse)
doctest.testmod(dkimparse.canonicalization)
unittest.TextTestRunner().run(test_suite())
