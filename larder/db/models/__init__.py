from larder.db.models.recipe import Recipe, RecipeImage, RecipeStep, RecipeVideo

__all__ = ["Recipe", "RecipeImage", "RecipeStep", "RecipeVideo"]
