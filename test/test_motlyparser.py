""" Test the MOTLY tag parser """

import os
import sys

current_script_path = os.path.abspath(__file__)
project_root = os.path.dirname(os.path.dirname(current_script_path))
sys.path.append(project_root)

import unittest

from motlyproto.motlyparser import MotlyParseError, parse_directives, parse_tag


def to_object(text):
    result = parse_tag(text)
    assert not result.log, result.log
    return result.tag.to_object()


class TestParseTag(unittest.TestCase):
    """ Test MOTLY statements and values """

    def test_assignments(self):
        self.assertEqual(to_object('name = string\ncount = number'), {'name': 'string', 'count': 'number'})

    def test_empty_document(self):
        self.assertEqual(to_object(''), {})
        self.assertEqual(to_object('  # only a comment\n'), {})

    def test_nested_properties(self):
        obj = to_object('''
            Required: {
                street = string
                city = string
            }
        ''')
        self.assertEqual(obj, {'Required': {'street': 'string', 'city': 'string'}})

    def test_declaration_order_is_kept(self):
        obj = to_object('zeta = a\nalpha = b\nmid = c')
        self.assertEqual(list(obj.keys()), ['zeta', 'alpha', 'mid'])

    def test_arrays(self):
        obj = to_object('status = [pending, active, "on hold"]')
        self.assertEqual(obj, {'status': ['pending', 'active', 'on hold']})

    def test_empty_array_and_trailing_comma(self):
        self.assertEqual(to_object('a = []'), {'a': []})
        self.assertEqual(to_object('a = [x, y,]'), {'a': ['x', 'y']})

    def test_array_of_blocks(self):
        obj = to_object('items = [{ name = a }, b]')
        self.assertEqual(obj, {'items': [{'name': 'a'}, 'b']})

    def test_value_with_properties_becomes_mapping(self):
        obj = to_object('''
            config = tag {
                Required: { host = string }
            }
        ''')
        self.assertEqual(obj, {'config': {'Required': {'host': 'string'}}})

    def test_quoted_values(self):
        obj = to_object('a = "string[]"\nb = \'single\'\nc = "line\\nbreak \\"q\\""')
        self.assertEqual(obj['a'], 'string[]')
        self.assertEqual(obj['b'], 'single')
        self.assertEqual(obj['c'], 'line\nbreak "q"')

    def test_numbers_and_dotted_words(self):
        obj = to_object('port = 8080\nratio = -1.5\npackage = myapp.v1')
        self.assertEqual(obj, {'port': '8080', 'ratio': '-1.5', 'package': 'myapp.v1'})

    def test_back_quoted_names(self):
        obj = to_object('`my-field` = string\n`another-long-name` = number')
        self.assertEqual(obj, {'my-field': 'string', 'another-long-name': 'number'})

    def test_dotted_paths(self):
        self.assertEqual(to_object('a.b.c = x'), {'a': {'b': {'c': 'x'}}})

    def test_bare_name_is_flag(self):
        self.assertEqual(to_object('deprecated'), {'deprecated': True})

    def test_merge_and_replace(self):
        merged = to_object('a { x = 1 }\na { y = 2 }')
        self.assertEqual(merged, {'a': {'x': '1', 'y': '2'}})
        replaced = to_object('a { x = 1 }\na: { y = 2 }')
        self.assertEqual(replaced, {'a': {'y': '2'}})

    def test_assignment_keeps_properties(self):
        obj = to_object('a { x = 1 }\na = foo')
        self.assertEqual(obj, {'a': {'x': '1'}})

    def test_delete(self):
        self.assertEqual(to_object('a = 1\nb = 2\n-a'), {'b': '2'})
        self.assertEqual(to_object('a { x = 1 y = 2 }\n-a.x'), {'a': {'y': '2'}})
        self.assertEqual(to_object('-missing.name'), {})

    def test_comments(self):
        obj = to_object('# leading\na = b  # trailing\n')
        self.assertEqual(obj, {'a': 'b'})


class TestParseErrors(unittest.TestCase):
    """ Test that syntax errors are reported in the log """

    def test_unexpected_end(self):
        result = parse_tag('a = ')
        self.assertEqual(len(result.log), 1)
        self.assertEqual(result.log[0].message, 'Unexpected end of input')
        self.assertEqual(result.tag.to_object(), {})

    def test_unclosed_block(self):
        result = parse_tag('Required: {\n  a = string\n')
        self.assertEqual(len(result.log), 1)

    def test_unexpected_token(self):
        result = parse_tag('a = }')
        self.assertEqual(len(result.log), 1)
        self.assertIn('Unexpected', result.log[0].message)
        self.assertIn('line 1', result.log[0].message)

    def test_unexpected_character(self):
        result = parse_tag('a = @')
        self.assertEqual(len(result.log), 1)
        self.assertTrue(result.log[0].message.startswith("Unexpected character '@'"))
        self.assertEqual(result.log[0].line, 1)


class TestParseDirectives(unittest.TestCase):
    """ Test '#!' directive extraction """

    def test_no_directives(self):
        content = 'Required: { a = string }'
        self.assertEqual(parse_directives(content), ({}, content))

    def test_package_directive(self):
        directives, rest = parse_directives('#! package = "myapp.v1"\nRequired: { a = string }')
        self.assertEqual(directives, {'package': 'myapp.v1'})
        self.assertEqual(rest, 'Required: { a = string }')

    def test_multiple_directives(self):
        directives, rest = parse_directives('#! package = "multi.v1"\n#! someOther = value\n\nRequired: {}')
        self.assertEqual(directives, {'package': 'multi.v1', 'someOther': 'value'})
        self.assertEqual(rest, '\nRequired: {}')

    def test_directives_only_at_start(self):
        content = 'a = b\n#! package = "late.v1"'
        directives, rest = parse_directives(content)
        self.assertEqual(directives, {})
        self.assertEqual(rest, content)

    def test_directive_parse_error(self):
        with self.assertRaises(MotlyParseError) as cm:
            parse_directives('#! package = \nRequired: {}')
        self.assertTrue(str(cm.exception).startswith('Directive parse errors: '))
        self.assertEqual(len(cm.exception.errors), 1)


if __name__ == '__main__':
    unittest.main()
