"""
GraphQL mutation strings for Shopify Admin API.
"""


# Create a product with its options and external media in one call
PRODUCT_CREATE = '''
mutation productCreate($product: ProductCreateInput!, $media: [CreateMediaInput!]) {
  productCreate(product: $product, media: $media) {
    product {
      id
      handle
      title
      media(first: 250) {
        nodes {
          id
        }
      }
      variants(first: 250) {
        nodes {
          id
          price
          selectedOptions {
            name
            value
          }
        }
      }
    }
    userErrors {
      field
      message
    }
  }
}
'''

# Create all variants; the standalone variant made by productCreate is removed
PRODUCT_VARIANTS_BULK_CREATE = '''
mutation productVariantsBulkCreate($productId: ID!, $strategy: ProductVariantsBulkCreateStrategy, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkCreate(productId: $productId, strategy: $strategy, variants: $variants) {
    productVariants {
      id
      price
      selectedOptions {
        name
        value
      }
    }
    userErrors {
      field
      message
    }
  }
}
'''

# Mutation to update variant prices
PRODUCT_VARIANTS_BULK_UPDATE = '''
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants {
      id
      price
      compareAtPrice
    }
    userErrors {
      field
      message
    }
  }
}
'''

COLLECTION_ADD_PRODUCTS = '''
mutation collectionAddProducts($id: ID!, $productIds: [ID!]!) {
  collectionAddProducts(id: $id, productIds: $productIds) {
    collection {
      id
    }
    userErrors {
      field
      message
    }
  }
}
'''

PUBLISHABLE_PUBLISH = '''
mutation publishablePublish($id: ID!, $input: [PublicationInput!]!) {
  publishablePublish(id: $id, input: $input) {
    userErrors {
      field
      message
    }
  }
}
'''
