import time
import unittest

import dice
import dice_details


class ParseTest(unittest.TestCase):
    def assertRendersAs(self, formula, expected):
        self.assertEqual(dice.parse(formula).render(), expected)

    def assertParseRaises(self, formula, error_type, position=None):
        with self.assertRaises(error_type) as caught:
            dice.parse(formula)
        if position is not None:
            self.assertEqual(caught.exception.position, position)
        return caught.exception


class LexerTest(unittest.TestCase):
    def test_token_kinds(self):
        kinds = [token.kind for token in dice.tokenize("(12d6)+3-4*5/6^7")]
        self.assertListEqual(
            kinds,
            [
                dice.TokenKind.LPAREN,
                dice.TokenKind.INT,
                dice.TokenKind.D,
                dice.TokenKind.INT,
                dice.TokenKind.RPAREN,
                dice.TokenKind.PLUS,
                dice.TokenKind.INT,
                dice.TokenKind.MINUS,
                dice.TokenKind.INT,
                dice.TokenKind.STAR,
                dice.TokenKind.INT,
                dice.TokenKind.SLASH,
                dice.TokenKind.INT,
                dice.TokenKind.CARET,
                dice.TokenKind.INT,
                dice.TokenKind.END,
            ],
        )

    def test_int_values_and_positions(self):
        tokens = dice.tokenize(" 12 d 345")
        self.assertEqual(tokens[0], dice.Token(dice.TokenKind.INT, 1, 12))
        self.assertEqual(tokens[1], dice.Token(dice.TokenKind.D, 4))
        self.assertEqual(tokens[2], dice.Token(dice.TokenKind.INT, 6, 345))
        self.assertEqual(tokens[3], dice.Token(dice.TokenKind.END, 9))

    def test_whitespace_skipped(self):
        tokens = dice.tokenize(" \t1\n　+ 2 ")
        self.assertEqual(len(tokens), 4)

    def test_empty_input_is_only_end(self):
        self.assertListEqual(dice.tokenize(""), [dice.Token(dice.TokenKind.END, 0)])

    def test_signs_are_not_folded(self):
        kinds = [token.kind for token in dice.tokenize("-5")]
        self.assertListEqual(
            kinds, [dice.TokenKind.MINUS, dice.TokenKind.INT, dice.TokenKind.END]
        )

    def test_unknown_character(self):
        with self.assertRaises(dice.LexerError) as caught:
            dice.tokenize("1 + x")
        self.assertEqual(caught.exception.position, 4)

    def test_uppercase_d_rejected(self):
        with self.assertRaises(dice.LexerError):
            dice.tokenize("1D6")


class RenderTest(ParseTest):
    def test_render(self):
        self.assertRendersAs("1d6", "(1d6)")
        self.assertRendersAs("1+1", "(1+1)")
        self.assertRendersAs("2+2*2", "(2+(2*2))")
        self.assertRendersAs("(3^3d3^3)d3^3", "(((3^((3d3)^3))d3)^3)")

    def test_left_associative(self):
        self.assertRendersAs("10-3-3", "((10-3)-3)")
        self.assertRendersAs("2/2/2", "((2/2)/2)")

    def test_power_is_right_associative(self):
        self.assertRendersAs("3^3^3", "(3^(3^3))")
        self.assertRendersAs("2^2^2", "(2^(2^2))")

    def test_signed_literals(self):
        self.assertRendersAs("-1", "-1")
        self.assertRendersAs("+5", "5")
        self.assertRendersAs("2--3", "(2--3)")
        self.assertRendersAs("2*-1", "(2*-1)")

    def test_whitespace(self):
        self.assertRendersAs(" 1 　+\t2\n", "(1+2)")

    def test_str_matches_render(self):
        tree = dice.parse("1d6+2")
        self.assertEqual(str(tree), tree.render())

    def test_parenthesized_dice(self):
        self.assertRendersAs("(2d2)d2", "((2d2)d2)")
        self.assertRendersAs("2d(2d2)", "(2d(2d2))")


class SyntaxErrorTest(ParseTest):
    def test_lexer_error(self):
        self.assertParseRaises("_", dice.LexerError, position=0)

    def test_missing_operand(self):
        self.assertParseRaises("1+", dice.ParseError, position=2)
        self.assertParseRaises("*2", dice.ParseError, position=0)
        self.assertParseRaises("", dice.ParseError, position=0)

    def test_chained_dice(self):
        err = self.assertParseRaises("2d2d2", dice.ParseError, position=3)
        self.assertIn("2d2d2", err.message)

    def test_chained_dice_reported_before_operand_checks(self):
        self.assertParseRaises("(1-1d2)d1d2", dice.ParseError, position=9)
        self.assertParseRaises("1d(1-1d2)d2", dice.ParseError, position=9)

    def test_unclosed_parenthesis(self):
        self.assertParseRaises("(1+2", dice.ParseError, position=4)

    def test_trailing_tokens(self):
        self.assertParseRaises("1 2", dice.ParseError, position=2)
        self.assertParseRaises("(1))", dice.ParseError, position=3)

    def test_sign_needs_literal(self):
        self.assertParseRaises("-(1)", dice.ParseError, position=0)
        self.assertParseRaises("2*-(1)", dice.ParseError, position=2)

    def test_error_text_has_position(self):
        err = self.assertParseRaises("1+", dice.ParseError)
        self.assertIn("pos = 2", str(err))

    def test_format_errors_share_base(self):
        self.assertTrue(issubclass(dice.LexerError, dice.DiceFormatError))
        self.assertTrue(issubclass(dice.ParseError, dice.DiceFormatError))
        self.assertTrue(issubclass(dice.DiceFormatError, dice.DiceRuntimeError))


class MathematicalErrorTest(ParseTest):
    def test_division_by_zero(self):
        self.assertParseRaises("1/0", dice.DivisionByZeroError)
        self.assertParseRaises("1/(2-2)", dice.DivisionByZeroError)
        self.assertParseRaises("1/(1d2-1)", dice.DivisionByZeroError)

    def test_division_by_zero_behind_subtraction(self):
        # each side's lowest outcome is 0 though min() of 3-1d3 is 2
        self.assertParseRaises("1/((3-1d3)+(3-1d3))", dice.DivisionByZeroError)
        self.assertParseRaises("1/(2d(1d2-1)+1d(1d2-1))", dice.DivisionByZeroError)

    def test_divide_zero_from_zero(self):
        self.assertParseRaises("0/0", dice.DivideZeroFromZeroError)
        self.assertParseRaises("(1*0)/(1/2)", dice.DivideZeroFromZeroError)

    def test_negative_dice_operands(self):
        self.assertParseRaises("1d(1-1d2)", dice.DiceFacesIsNegativeError)
        self.assertParseRaises("(1-1d2)d1", dice.DiceCountIsNegativeError)
        self.assertParseRaises("-1d6", dice.DiceCountIsNegativeError)

    def test_negative_exponent(self):
        self.assertParseRaises("2^-1", dice.NegativeExponentError)
        self.assertParseRaises("2^(1-1d2)", dice.NegativeExponentError)

    def test_mathematical_errors_share_base(self):
        for error_type in (
            dice.DivisionByZeroError,
            dice.DivideZeroFromZeroError,
            dice.DiceCountIsNegativeError,
            dice.DiceFacesIsNegativeError,
            dice.NegativeExponentError,
        ):
            self.assertTrue(issubclass(error_type, dice.MathematicalError))


class EvaluateTest(unittest.TestCase):
    def test_bounds(self):
        self.assertEqual(dice.parse("1d6*2").min(), 2)
        self.assertEqual(dice.parse("10+1d10").max(), 20)
        self.assertEqual(dice.parse("1d10").median(), 5.5)

    def test_deterministic_samples(self):
        self.assertEqual(dice.parse("1*4-1").sample(), 3)
        self.assertEqual(dice.parse("1d1").sample(), 1)
        self.assertEqual(dice.parse("7/2").sample(), 3)
        self.assertEqual(dice.parse("-7/2").sample(), -3)

    def test_roll(self):
        self.assertEqual(dice.roll("2d6+1", roller=lambda low, high: high), 13)
        for _ in range(50):
            self.assertIn(dice.roll("2d6"), range(2, 13))

    def test_probability(self):
        self.assertSetEqual(dice.parse("1").probability(), {1})
        self.assertSetEqual(dice.parse("1d2").probability(), {1, 2})
        self.assertSetEqual(dice.parse("1d2*2").probability(), {2, 4})
        self.assertSetEqual(dice.parse("1d2+1d2").probability(), {2, 3, 4})
        self.assertSetEqual(dice.parse("1d2-1d2").probability(), {-1, 0, 1})
        self.assertSetEqual(dice.parse("1d2*1d2").probability(), {1, 2, 4})
        self.assertSetEqual(dice.parse("1d2/1d2").probability(), {0, 1, 2})

    def test_may_be_zero(self):
        self.assertTrue(dice.parse(" 0").may_be_zero())
        self.assertFalse(dice.parse("-1").may_be_zero())
        self.assertFalse(dice.parse("2-3").may_be_zero())
        self.assertTrue(dice.parse("2-1d3").may_be_zero())

    def test_may_be_negative(self):
        self.assertFalse(dice.parse(" 0").may_be_negative())
        self.assertTrue(dice.parse("-1").may_be_negative())
        self.assertTrue(dice.parse("2-3").may_be_negative())
        self.assertTrue(dice.parse("2-1d3").may_be_negative())


class PerformanceTest(unittest.TestCase):
    TIME_LIMIT = 1.0  # in seconds

    def assertQuick(self, formula, check):
        cache = dice_details.EvaluationCache()
        start = time.perf_counter()
        check(dice.parse(formula, cache))
        elapsed = time.perf_counter() - start
        self.assertLess(elapsed, self.TIME_LIMIT, f"{formula} took {elapsed:.3f}s")

    def test_may_be_zero(self):
        for formula in (
            "200d10+200d10",
            "200d10-199d10",
            "200d10*200d10",
            "200d10/200d10",
            "30 d10^40 d10",
        ):
            self.assertQuick(formula, lambda tree: tree.may_be_zero())

    def test_may_be_negative(self):
        for formula in (
            "200d10+200d10",
            "200d10-200d10",
            "200d10*200d10",
            "200d10/200d10",
            "30 d10^50 d10",
        ):
            self.assertQuick(formula, lambda tree: tree.may_be_negative())

    def test_probability_of_large_sums(self):
        self.assertQuick("200d20+200d20", lambda tree: tree.probability())
        self.assertQuick("200d20-200d20", lambda tree: tree.probability())


if __name__ == "__main__":
    unittest.main()
